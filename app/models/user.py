from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class Role(str, Enum):
    LEARNER = "LEARNER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


# may revoke certificates and manage templates
ADMIN_ROLES = frozenset({Role.ADMIN.value, Role.SUPER_ADMIN.value})
# may see other people's certificates
ELEVATED_ROLES = ADMIN_ROLES | {Role.MANAGER.value}


class User(Base):
    __tablename__ = "users"

    id:         Mapped[int]      = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    name:       Mapped[str]      = mapped_column(String(255), nullable=False)
    email:      Mapped[str]      = mapped_column(String(255), unique=True, index=True, nullable=False)
    status:     Mapped[str]      = mapped_column(String(20), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    roles: Mapped[List["UserRole"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def role_names(self) -> set[str]:
        return {r.role for r in self.roles}

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def has_any_role(self, allowed) -> bool:
        return bool(self.role_names & set(allowed))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_role"),)

    id:      Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role:    Mapped[str] = mapped_column(String(32), nullable=False)

    user: Mapped["User"] = relationship(back_populates="roles")
