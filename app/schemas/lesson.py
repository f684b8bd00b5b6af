from datetime import datetime
from typing import Optional

from pydantic import Field

from app.schemas.certificate import CamelModel


class LessonTrackIn(CamelModel):
    time_spent_sec: Optional[int] = Field(default=None, ge=0)
    increment_view: bool = False


class LessonProgressOut(CamelModel):
    id: int
    user_id: int
    lesson_id: int
    status: str
    time_spent_sec: int
    views: int
    last_activity_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class LessonProgressEnvelopeOut(CamelModel):
    progress: LessonProgressOut
