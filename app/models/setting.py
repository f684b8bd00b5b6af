from datetime import datetime, timezone
from sqlalchemy import DateTime, Integer, String, JSON
from sqlalchemy.orm import Mapped, mapped_column
from app.core.database import Base


class Setting(Base):
    """
    One row per settings category ("branding", "course", ...).
    `value` holds only the keys an administrator overrode; defaults live in code.
    """
    __tablename__ = "settings"

    id:         Mapped[int]      = mapped_column(Integer, primary_key=True)
    key:        Mapped[str]      = mapped_column(String(100), unique=True, index=True, nullable=False)
    value:      Mapped[dict]     = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
