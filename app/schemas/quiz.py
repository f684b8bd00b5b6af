from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from app.schemas.certificate import CamelModel, CertificateOut


# ------------------ START ------------------

class LearnerOptionOut(CamelModel):
    """Option as shown while the attempt is open: no correctness flag."""
    id: int
    label: str
    order: int


class LearnerQuestionOut(CamelModel):
    id: int
    type: str
    prompt_html: str
    points: int
    order: int
    options: List[LearnerOptionOut] = Field(default_factory=list)


class AttemptStartedOut(CamelModel):
    id: int
    quiz_id: int
    attempt_no: int
    started_at: datetime
    time_limit_sec: Optional[int] = None


class QuizStartOut(CamelModel):
    attempt: AttemptStartedOut
    questions: List[LearnerQuestionOut]


# ------------------ SUBMIT ------------------

class AnswerIn(CamelModel):
    question_id: int
    option_ids: List[int] = Field(default_factory=list)
    response_text: Optional[str] = None

    @field_validator("option_ids", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return [] if v is None else v


class QuizSubmitIn(CamelModel):
    attempt_id: int
    answers: List[AnswerIn] = Field(default_factory=list)


class AttemptResultOut(CamelModel):
    id: int
    attempt_no: int
    score: int
    max_score: int
    percentage: int
    passed: bool
    submitted_at: datetime


class QuestionResultOut(CamelModel):
    question_id: int
    is_correct: bool
    points_awarded: int
    explanation_html: Optional[str] = None


class QuizSubmitOut(CamelModel):
    attempt: AttemptResultOut
    results: List[QuestionResultOut]
    certificate: Optional[CertificateOut] = None

