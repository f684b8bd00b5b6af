from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_user
from app.controllers.quiz_controller import start_attempt, submit_attempt
from app.models.user import User
from app.schemas.quiz import QuizStartOut, QuizSubmitIn, QuizSubmitOut

router = APIRouter(prefix="/quizzes", tags=["Quizzes"])


@router.post("/{quiz_id}/start", response_model=QuizStartOut)
async def start_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Opens a new attempt. Questions come back without correctness flags,
    shuffled per call when the quiz is randomised.
    """
    return await start_attempt(db, user, quiz_id)


@router.post("/{quiz_id}/submit", response_model=QuizSubmitOut)
async def submit_quiz(
    quiz_id: int,
    payload: QuizSubmitIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await submit_attempt(db, user, quiz_id, payload)
