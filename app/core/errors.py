"""
Error taxonomy shared by controllers and routes.

Every error is an ``HTTPException`` so it can be raised from anywhere in a
request and FastAPI renders it as ``{"detail": "..."}`` with the right status.
"""
from fastapi import HTTPException, status


class AppError(HTTPException):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None, headers: dict | None = None):
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid data"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized"

    def __init__(self, detail: str | None = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class InternalError(AppError):
    pass


# ── Quiz attempt engine ───────────────────────────────────────────────

class NotEnrolled(Forbidden):
    default_detail = "Not enrolled in this course"


class QuizNotFound(NotFound):
    default_detail = "Quiz not found"


class AttemptLimitExceeded(Conflict):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Maximum attempts reached"


class AlreadySubmitted(Conflict):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Attempt already submitted"


# ── Certificates ──────────────────────────────────────────────────────

class CertificateGenerationError(InternalError):
    default_detail = "Certificate generation failed"
