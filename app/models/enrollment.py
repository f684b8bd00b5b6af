from sqlalchemy import Column, Integer, DateTime, Enum, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base


class EnrollmentStatus(str, enum.Enum):
    ASSIGNED = "assigned"
    STARTED = "started"
    COMPLETED = "completed"


# statuses in which a learner may still work on the course
OPEN_ENROLLMENT_STATUSES = (EnrollmentStatus.ASSIGNED, EnrollmentStatus.STARTED)


class Enrollment(Base):
    __tablename__ = "enrollments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(
        Enum(EnrollmentStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=EnrollmentStatus.ASSIGNED,
    )

    assigned_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    certificate_id = Column(Integer, ForeignKey("certificates.id", ondelete="SET NULL"), nullable=True)

    user = relationship("User")
    course = relationship("Course")

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),
    )
