from datetime import datetime, timezone

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotEnrolled, NotFound
from app.models.course import CourseModule, Lesson, LessonProgress
from app.models.enrollment import Enrollment, EnrollmentStatus, OPEN_ENROLLMENT_STATUSES


def record_activity(enrollment: Enrollment, now: datetime | None = None) -> bool:
    """
    First-activity transition: assigned -> started.
    No-op (returns False) once the enrollment is past `assigned`.
    """
    if enrollment.status != EnrollmentStatus.ASSIGNED:
        return False
    enrollment.status = EnrollmentStatus.STARTED
    enrollment.started_at = now or datetime.now(timezone.utc)
    return True


def complete_enrollment(enrollment: Enrollment, certificate_id: int | None, now: datetime | None = None) -> None:
    enrollment.status = EnrollmentStatus.COMPLETED
    enrollment.completed_at = now or datetime.now(timezone.utc)
    if certificate_id is not None:
        enrollment.certificate_id = certificate_id


async def get_open_enrollment(db: AsyncSession, user_id: int, course_id: int) -> Enrollment | None:
    stmt = select(Enrollment).where(
        Enrollment.user_id == user_id,
        Enrollment.course_id == course_id,
        Enrollment.status.in_(OPEN_ENROLLMENT_STATUSES),
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def course_lessons_completed(db: AsyncSession, user_id: int, course_id: int) -> bool:
    """True when every lesson of the course has a completed progress row. No lessons counts as done."""
    total = (await db.execute(
        select(func.count(Lesson.id))
        .join(CourseModule, CourseModule.id == Lesson.module_id)
        .where(CourseModule.course_id == course_id)
    )).scalar() or 0

    if total == 0:
        return True

    done = (await db.execute(
        select(func.count(LessonProgress.id))
        .join(Lesson, Lesson.id == LessonProgress.lesson_id)
        .join(CourseModule, CourseModule.id == Lesson.module_id)
        .where(
            CourseModule.course_id == course_id,
            LessonProgress.user_id == user_id,
            LessonProgress.status == "completed",
        )
    )).scalar() or 0

    return done >= total


# =========================================================
# ------------------- LESSON TRACKING ---------------------
# =========================================================

async def _lesson_with_enrollment(db: AsyncSession, user_id: int, lesson_id: int):
    row = (await db.execute(
        select(Lesson, CourseModule.course_id)
        .join(CourseModule, CourseModule.id == Lesson.module_id)
        .where(Lesson.id == lesson_id)
    )).first()
    if not row:
        raise NotFound("Lesson not found")

    lesson, course_id = row
    enrollment = (await db.execute(
        select(Enrollment).where(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
    )).scalar_one_or_none()
    if not enrollment:
        raise NotEnrolled()

    return lesson, enrollment


async def _get_or_create_progress(db: AsyncSession, user_id: int, lesson_id: int, now: datetime) -> LessonProgress:
    progress = (await db.execute(
        select(LessonProgress).where(
            LessonProgress.user_id == user_id,
            LessonProgress.lesson_id == lesson_id,
        )
    )).scalar_one_or_none()

    if progress is None:
        progress = LessonProgress(
            user_id=user_id,
            lesson_id=lesson_id,
            status="seen",
            time_spent_sec=0,
            views=0,
            last_activity_at=now,
        )
        db.add(progress)
    return progress


async def track_lesson(
    db: AsyncSession,
    *,
    user_id: int,
    lesson_id: int,
    time_spent_sec: int | None = None,
    increment_view: bool = False,
) -> LessonProgress:
    now = datetime.now(timezone.utc)
    _, enrollment = await _lesson_with_enrollment(db, user_id, lesson_id)

    progress = await _get_or_create_progress(db, user_id, lesson_id, now)
    progress.last_activity_at = now
    if time_spent_sec:
        progress.time_spent_sec = (progress.time_spent_sec or 0) + int(time_spent_sec)
    if increment_view:
        progress.views = (progress.views or 0) + 1

    record_activity(enrollment, now)
    await db.flush()
    return progress


async def complete_lesson(db: AsyncSession, *, user_id: int, lesson_id: int) -> LessonProgress:
    now = datetime.now(timezone.utc)
    _, enrollment = await _lesson_with_enrollment(db, user_id, lesson_id)

    progress = await _get_or_create_progress(db, user_id, lesson_id, now)
    progress.last_activity_at = now
    if progress.status != "completed":
        progress.status = "completed"
        progress.completed_at = now

    record_activity(enrollment, now)
    await db.flush()
    return progress
