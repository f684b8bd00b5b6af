import logging
import random
from datetime import datetime, timezone

from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import (
    AlreadySubmitted,
    AttemptLimitExceeded,
    Conflict,
    Forbidden,
    NotEnrolled,
    NotFound,
    QuizNotFound,
    ValidationError,
)
from app.core.scoring import percentage, round_half_up
from app.controllers.enrollment_controller import get_open_enrollment, record_activity
from app.controllers.certificates_controller import (
    certificate_out,
    load_certificate,
    maybe_issue_for_completion,
)
from app.models.course import Course
from app.models.quiz import Question, QuestionType, Quiz, QuizAttempt, QuizAttemptAnswer
from app.models.user import User
from app.schemas.quiz import (
    AnswerIn,
    AttemptResultOut,
    AttemptStartedOut,
    LearnerOptionOut,
    LearnerQuestionOut,
    QuestionResultOut,
    QuizStartOut,
    QuizSubmitIn,
    QuizSubmitOut,
)

logger = logging.getLogger(__name__)

_rng = random.SystemRandom()


# =========================================================
# ----------------------- SCORING -------------------------
# =========================================================

def normalize_answer(text: str | None) -> str:
    return " ".join((text or "").split()).casefold()


def is_answer_correct(question: Question, option_ids: list[int], response_text: str | None) -> bool:
    """
    single_choice / true_false: exactly the one correct option selected.
    multi_choice: all-or-nothing, selected set == correct set.
    short_answer: normalised text equals one of the "|"-separated keys.
    Ids of options that belong to other questions are ignored.
    """
    qtype = QuestionType(question.type)

    if qtype == QuestionType.SHORT_ANSWER:
        if not question.answer_key:
            return False
        accepted = {normalize_answer(k) for k in question.answer_key.split("|")}
        accepted.discard("")
        return normalize_answer(response_text) in accepted

    own_ids = {o.id for o in question.options}
    selected = {int(i) for i in option_ids} & own_ids
    correct = {o.id for o in question.options if o.is_correct}

    if not correct:
        return False

    if qtype in (QuestionType.SINGLE_CHOICE, QuestionType.TRUE_FALSE):
        return len(selected) == 1 and selected == correct

    return selected == correct


def effective_pass_mark(quiz: Quiz, course: Course) -> int:
    if quiz.pass_mark_override is not None:
        return quiz.pass_mark_override
    return course.pass_mark


def shuffled(questions: list[Question]) -> list[Question]:
    """New uniformly random order (Fisher-Yates), drawn fresh on every call."""
    out = list(questions)
    _rng.shuffle(out)
    return out


# =========================================================
# ------------------------ START --------------------------
# =========================================================

async def _load_quiz(db: AsyncSession, quiz_id: int) -> Quiz | None:
    stmt = (
        select(Quiz)
        .options(
            selectinload(Quiz.questions).selectinload(Question.options),
            selectinload(Quiz.course),
        )
        .where(Quiz.id == quiz_id)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


def _learner_question(q: Question) -> LearnerQuestionOut:
    return LearnerQuestionOut(
        id=q.id,
        type=QuestionType(q.type).value,
        prompt_html=q.prompt_html,
        points=q.points,
        order=q.order,
        options=[LearnerOptionOut(id=o.id, label=o.label, order=o.order) for o in q.options],
    )


async def start_attempt(db: AsyncSession, user: User, quiz_id: int) -> QuizStartOut:
    user_id = user.id
    quiz = await _load_quiz(db, quiz_id)
    if not quiz:
        raise QuizNotFound()

    enrollment = await get_open_enrollment(db, user.id, quiz.course_id)
    if not enrollment:
        raise NotEnrolled()

    last_no = (await db.execute(
        select(func.max(QuizAttempt.attempt_no)).where(
            QuizAttempt.quiz_id == quiz.id,
            QuizAttempt.user_id == user.id,
        )
    )).scalar() or 0

    attempt_no = last_no + 1
    if attempt_no > quiz.attempts_allowed:
        raise AttemptLimitExceeded()

    now = datetime.now(timezone.utc)
    attempt = QuizAttempt(
        quiz_id=quiz.id,
        user_id=user.id,
        attempt_no=attempt_no,
        score=0,
        passed=False,
        started_at=now,
    )
    db.add(attempt)
    try:
        await db.flush()
    except IntegrityError:
        # another start for the same (quiz, user) took this number first
        await db.rollback()
        logger.warning("Concurrent start for quiz %s user %s at attempt %s", quiz_id, user_id, attempt_no)
        raise Conflict("Another attempt was started at the same time, please retry")

    record_activity(enrollment, now)
    await db.flush()

    questions = shuffled(quiz.questions) if quiz.randomize else list(quiz.questions)

    logger.info("User %s started attempt %s of quiz %s", user.id, attempt_no, quiz.id)
    return QuizStartOut(
        attempt=AttemptStartedOut(
            id=attempt.id,
            quiz_id=quiz.id,
            attempt_no=attempt_no,
            started_at=now,
            time_limit_sec=quiz.time_limit_sec,
        ),
        questions=[_learner_question(q) for q in questions],
    )


# =========================================================
# ------------------------ SUBMIT -------------------------
# =========================================================

async def submit_attempt(db: AsyncSession, user: User, quiz_id: int, payload: QuizSubmitIn) -> QuizSubmitOut:
    attempt = (await db.execute(
        select(QuizAttempt).where(QuizAttempt.id == payload.attempt_id)
    )).scalar_one_or_none()

    if not attempt:
        raise NotFound("Attempt not found")
    if attempt.user_id != user.id:
        raise Forbidden("Invalid attempt - user mismatch")
    if attempt.quiz_id != quiz_id:
        raise ValidationError("Invalid attempt - quiz mismatch")
    if attempt.submitted_at is not None:
        raise AlreadySubmitted()

    quiz = await _load_quiz(db, quiz_id)
    if not quiz:
        raise QuizNotFound()

    answers: dict[int, AnswerIn] = {a.question_id: a for a in payload.answers}

    score = 0
    max_score = 0
    graded: list[tuple[Question, AnswerIn | None, bool]] = []
    for question in quiz.questions:
        max_score += question.points
        answer = answers.get(question.id)
        correct = answer is not None and is_answer_correct(question, answer.option_ids, answer.response_text)
        if correct:
            score += question.points
        graded.append((question, answer, correct))

    pct = percentage(score, max_score) or 0.0
    passed = pct >= effective_pass_mark(quiz, quiz.course)
    now = datetime.now(timezone.utc)

    # set once: the WHERE keeps a racing second submit from overwriting
    result = await db.execute(
        update(QuizAttempt)
        .where(QuizAttempt.id == attempt.id, QuizAttempt.submitted_at.is_(None))
        .values(score=score, passed=passed, submitted_at=now)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise AlreadySubmitted()

    results = []
    for question, answer, correct in graded:
        points = question.points if correct else 0
        db.add(QuizAttemptAnswer(
            attempt_id=attempt.id,
            question_id=question.id,
            option_ids=list(answer.option_ids) if answer else [],
            response_text=answer.response_text if answer else None,
            is_correct=correct,
            points_awarded=points,
        ))
        results.append(QuestionResultOut(
            question_id=question.id,
            is_correct=correct,
            points_awarded=points,
            explanation_html=question.explanation_html,
        ))

    summary = AttemptResultOut(
        id=attempt.id,
        attempt_no=attempt.attempt_no,
        score=score,
        max_score=max_score,
        percentage=round_half_up(pct),
        passed=passed,
        submitted_at=now,
    )
    course_id = quiz.course_id

    # the attempt is final before any certificate work starts
    await db.commit()
    logger.info(
        "User %s submitted attempt %s of quiz %s: %s/%s passed=%s",
        user.id, summary.attempt_no, quiz_id, score, max_score, passed,
    )

    certificate = None
    if passed:
        cert = await maybe_issue_for_completion(
            db,
            user_id=user.id,
            course_id=course_id,
            score=score,
            max_score=max_score,
        )
        if cert is not None:
            certificate = certificate_out(await load_certificate(db, cert.id))

    return QuizSubmitOut(attempt=summary, results=results, certificate=certificate)
