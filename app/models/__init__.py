# Import every model so Base.metadata knows all tables (create_all, Alembic).
from app.models.user import User, UserRole, Role  # noqa: F401
from app.models.course import Course, CourseModule, Lesson, LessonProgress  # noqa: F401
from app.models.enrollment import Enrollment, EnrollmentStatus  # noqa: F401
from app.models.quiz import (  # noqa: F401
    Quiz,
    Question,
    QuestionOption,
    QuestionType,
    QuizAttempt,
    QuizAttemptAnswer,
)
from app.models.certificate import Certificate, CertificateTemplate  # noqa: F401
from app.models.setting import Setting  # noqa: F401
