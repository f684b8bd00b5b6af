"""
Pytest configuration and fixtures for the LMS API tests.

Each test gets its own SQLite file and its own certificate directories.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("PUBLIC_BASE_URL", "https://lms.example.com")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.core.database import Base, get_db
from app.core.security import create_access_token
from app.main import app
from app.models.course import Course, CourseModule, Lesson, LessonProgress
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.quiz import Question, QuestionOption, QuestionType, Quiz
from app.models.user import Role, User, UserRole


# =============================================================================
# Database / storage
# =============================================================================

@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    """Session for arranging data and calling controllers directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def cert_dirs(tmp_path, monkeypatch):
    """Point certificate artifacts at the test's temp directory."""
    pdf_dir = tmp_path / "certificates"
    qr_dir = tmp_path / "certificates" / "qrcodes"
    monkeypatch.setattr(settings, "CERTIFICATES_PATH", str(pdf_dir))
    monkeypatch.setattr(settings, "QR_CODE_PATH", str(qr_dir))
    return pdf_dir, qr_dir


# =============================================================================
# API client
# =============================================================================

@pytest.fixture
async def client(session_factory):
    """httpx client bound to the app, using the per-test database."""

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


# =============================================================================
# Factories
# =============================================================================

async def create_user(db, name="Jane Learner", email=None, roles=(Role.LEARNER,)) -> User:
    user = User(name=name, email=email or f"{name.lower().replace(' ', '.')}@example.com")
    user.roles = [UserRole(role=Role(r).value) for r in roles]
    db.add(user)
    await db.commit()
    return user


async def create_course(db, title="Python Basics", lessons=0, **kwargs) -> Course:
    course = Course(title=title, description=f"{title} course", **kwargs)
    db.add(course)
    await db.flush()

    if lessons:
        module = CourseModule(course_id=course.id, title="Module 1", order=1)
        db.add(module)
        await db.flush()
        for i in range(lessons):
            db.add(Lesson(module_id=module.id, title=f"Lesson {i + 1}", order=i + 1))

    await db.commit()
    return course


async def enroll(db, user, course, status=EnrollmentStatus.ASSIGNED) -> Enrollment:
    enrollment = Enrollment(user_id=user.id, course_id=course.id, status=status)
    db.add(enrollment)
    await db.commit()
    return enrollment


async def complete_all_lessons(db, user, course) -> None:
    from sqlalchemy import select

    lesson_ids = (await db.execute(
        select(Lesson.id).join(CourseModule).where(CourseModule.course_id == course.id)
    )).scalars().all()
    for lesson_id in lesson_ids:
        db.add(LessonProgress(user_id=user.id, lesson_id=lesson_id, status="completed"))
    await db.commit()


async def create_quiz(db, course, questions=3, **kwargs) -> Quiz:
    """
    Quiz of `questions` single-choice questions worth 1 point each.
    Option "A" is correct, "B" is wrong.
    """
    quiz = Quiz(course_id=course.id, title=f"{course.title} quiz", **kwargs)
    db.add(quiz)
    await db.flush()

    for i in range(questions):
        q = Question(
            quiz_id=quiz.id,
            type=QuestionType.SINGLE_CHOICE,
            prompt_html=f"<p>Question {i + 1}</p>",
            explanation_html=f"<p>Because A ({i + 1})</p>",
            points=1,
            order=i + 1,
        )
        q.options = [
            QuestionOption(label="A", is_correct=True, order=1),
            QuestionOption(label="B", is_correct=False, order=2),
        ]
        db.add(q)

    await db.commit()
    return quiz


async def answer_key(db, quiz) -> dict[int, tuple[int, int]]:
    """question id -> (correct option id, wrong option id)"""
    from sqlalchemy import select

    rows = (await db.execute(
        select(QuestionOption).join(Question).where(Question.quiz_id == quiz.id)
    )).scalars().all()

    out: dict[int, list] = {}
    for o in rows:
        pair = out.setdefault(o.question_id, [None, None])
        pair[0 if o.is_correct else 1] = o.id
    return {k: tuple(v) for k, v in out.items()}


# =============================================================================
# Identity Fixtures
# =============================================================================

@pytest.fixture
async def learner(db):
    return await create_user(db, "Jane Learner")


@pytest.fixture
async def other_learner(db):
    return await create_user(db, "Sam Other")


@pytest.fixture
async def admin(db):
    return await create_user(db, "Ada Admin", roles=(Role.ADMIN,))


@pytest.fixture
async def manager(db):
    return await create_user(db, "Max Manager", roles=(Role.MANAGER,))


@pytest.fixture
async def course(db):
    return await create_course(db)
