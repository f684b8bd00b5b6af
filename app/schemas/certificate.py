from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


CertificateStatus = Literal["active", "expired", "revoked"]


class CertificateUserOut(CamelModel):
    id: int
    name: str
    email: Optional[str] = None


class CertificateCourseOut(CamelModel):
    id: int
    title: str
    description: Optional[str] = None


class CertificateOut(CamelModel):
    id: int
    number: str
    user_id: int
    course_id: int
    template_id: Optional[int] = None
    issued_at: datetime
    expiry_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoke_reason: Optional[str] = None
    pdf_url: str
    qr_code_url: Optional[str] = None

    is_expired: bool
    is_revoked: bool
    status: CertificateStatus

    user: Optional[CertificateUserOut] = None
    course: Optional[CertificateCourseOut] = None


class CertificateListOut(CamelModel):
    certificates: list[CertificateOut]


class CertificateEnvelopeOut(CamelModel):
    certificate: CertificateOut
    message: Optional[str] = None


class CertificateIssueIn(CamelModel):
    user_id: int
    course_id: int
    score: int = Field(ge=0)
    max_score: int = Field(ge=0)
    template_id: Optional[int] = None
    expiry_days: Optional[int] = Field(default=None, ge=0)


class CertificateRevokeIn(CamelModel):
    reason: str = Field(min_length=1)

    @field_validator("reason")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason is required")
        return v


class CertificateVerifyOut(CamelModel):
    valid: bool
    status: CertificateStatus
    is_expired: bool
    is_revoked: bool
    certificate: CertificateOut


# ------------------ TEMPLATES ------------------

class TemplateCreateIn(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    default_expiry_days: Optional[int] = Field(default=None, ge=0)
    design_json: dict = Field(default_factory=dict)


class TemplateUpdateIn(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    default_expiry_days: Optional[int] = Field(default=None, ge=0)
    design_json: Optional[dict] = None


class TemplateOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    default_expiry_days: Optional[int] = None
    design_json: dict
    created_at: datetime
    updated_at: datetime
