from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, JSON,
    DateTime, Enum, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base


class QuestionType(str, enum.Enum):
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"


def _utcnow():
    return datetime.now(timezone.utc)


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)

    attempts_allowed = Column(Integer, nullable=False, default=3)
    time_limit_sec = Column(Integer, nullable=True)
    randomize = Column(Boolean, nullable=False, default=False)
    pass_mark_override = Column(Integer, nullable=True)  # percentage, wins over course.pass_mark

    course = relationship("Course", back_populates="quizzes")
    questions = relationship(
        "Question",
        back_populates="quiz",
        order_by="Question.order",
        cascade="all, delete-orphan",
    )


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(
        Enum(QuestionType, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    prompt_html = Column(Text, nullable=False)
    explanation_html = Column(Text, nullable=True)
    points = Column(Integer, nullable=False, default=1)
    order = Column(Integer, nullable=False, default=0)

    # short_answer only: accepted answers separated by "|"
    answer_key = Column(Text, nullable=True)

    quiz = relationship("Quiz", back_populates="questions")
    options = relationship(
        "QuestionOption",
        back_populates="question",
        order_by="QuestionOption.order",
        cascade="all, delete-orphan",
    )


class QuestionOption(Base):
    __tablename__ = "question_options"

    id = Column(Integer, primary_key=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    label = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False, default=0)

    question = relationship("Question", back_populates="options")


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    attempt_no = Column(Integer, nullable=False)
    score = Column(Integer, nullable=False, default=0)
    passed = Column(Boolean, nullable=False, default=False)

    started_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    submitted_at = Column(DateTime(timezone=True), nullable=True)

    quiz = relationship("Quiz")
    answers = relationship("QuizAttemptAnswer", back_populates="attempt", cascade="all, delete-orphan")

    __table_args__ = (
        # two concurrent starts cannot both take the same number
        UniqueConstraint("quiz_id", "user_id", "attempt_no", name="uq_attempt_quiz_user_no"),
    )


class QuizAttemptAnswer(Base):
    __tablename__ = "quiz_attempt_answers"

    id = Column(Integer, primary_key=True)
    attempt_id = Column(Integer, ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)

    option_ids = Column(JSON, nullable=False, default=list)
    response_text = Column(Text, nullable=True)
    is_correct = Column(Boolean, nullable=False, default=False)
    points_awarded = Column(Integer, nullable=False, default=0)

    attempt = relationship("QuizAttempt", back_populates="answers")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )
