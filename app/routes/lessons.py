from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_user
from app.controllers.enrollment_controller import complete_lesson, track_lesson
from app.models.user import User
from app.schemas.lesson import LessonProgressEnvelopeOut, LessonProgressOut, LessonTrackIn

router = APIRouter(prefix="/lessons", tags=["Lessons"])


@router.post("/{lesson_id}/track", response_model=LessonProgressEnvelopeOut)
async def track_lesson_api(
    lesson_id: int,
    payload: LessonTrackIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    progress = await track_lesson(
        db,
        user_id=user.id,
        lesson_id=lesson_id,
        time_spent_sec=payload.time_spent_sec,
        increment_view=payload.increment_view,
    )
    return {"progress": LessonProgressOut.model_validate(progress)}


@router.post("/{lesson_id}/complete", response_model=LessonProgressEnvelopeOut)
async def complete_lesson_api(
    lesson_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    progress = await complete_lesson(db, user_id=user.id, lesson_id=lesson_id)
    return {"progress": LessonProgressOut.model_validate(progress)}
