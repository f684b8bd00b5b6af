import logging
from datetime import datetime, timedelta, timezone
from functools import partial
from pathlib import Path

import anyio
from sqlalchemy import inspect as sa_inspect, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core import cert_storage
from app.core.cert_pdf import Branding, TemplateDesign, build_certificate_pdf, render_qr_png
from app.core.cert_tokens import build_verify_url, generate_certificate_number
from app.core.errors import (
    CertificateGenerationError,
    Forbidden,
    NotFound,
    ValidationError,
)
from app.controllers.enrollment_controller import (
    complete_enrollment,
    course_lessons_completed,
    get_open_enrollment,
)
from app.controllers.settings_controller import load_branding, load_course_defaults
from app.models.certificate import Certificate, CertificateTemplate
from app.models.course import Course
from app.models.user import ELEVATED_ROLES, User
from app.schemas.certificate import CertificateOut

logger = logging.getLogger(__name__)

# fresh numbers to try when the ledger rejects one as a duplicate
MAX_NUMBER_ATTEMPTS = 3

STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_REVOKED = "revoked"


# =========================================================
# ---------------------- DERIVED STATE --------------------
# =========================================================

def _utc(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def is_revoked(cert: Certificate) -> bool:
    return cert.revoked_at is not None


def is_expired(cert: Certificate, now: datetime | None = None) -> bool:
    if cert.expiry_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return _utc(cert.expiry_at) < now


def certificate_status(cert: Certificate, now: datetime | None = None) -> str:
    # revocation wins over expiry
    if is_revoked(cert):
        return STATUS_REVOKED
    if is_expired(cert, now):
        return STATUS_EXPIRED
    return STATUS_ACTIVE


def certificate_out(cert: Certificate, now: datetime | None = None, *, include_email: bool = True) -> CertificateOut:
    """Row -> response model. `user`/`course` are included only when already loaded."""
    now = now or datetime.now(timezone.utc)
    unloaded = sa_inspect(cert).unloaded

    user = cert.user if "user" not in unloaded else None
    course = cert.course if "course" not in unloaded else None

    return CertificateOut(
        id=cert.id,
        number=cert.number,
        user_id=cert.user_id,
        course_id=cert.course_id,
        template_id=cert.template_id,
        issued_at=_utc(cert.issued_at),
        expiry_at=_utc(cert.expiry_at),
        revoked_at=_utc(cert.revoked_at),
        revoke_reason=cert.revoke_reason,
        pdf_url=cert.pdf_url,
        qr_code_url=cert.qr_code_url,
        is_expired=is_expired(cert, now),
        is_revoked=is_revoked(cert),
        status=certificate_status(cert, now),
        user=(
            {"id": user.id, "name": user.name, "email": user.email if include_email else None}
            if user is not None else None
        ),
        course=(
            {"id": course.id, "title": course.title, "description": course.description}
            if course is not None else None
        ),
    )


# =========================================================
# ------------------------ LOOKUPS ------------------------
# =========================================================

def _with_relations(stmt):
    return stmt.options(selectinload(Certificate.user), selectinload(Certificate.course))


async def load_certificate(db: AsyncSession, certificate_id: int) -> Certificate | None:
    stmt = _with_relations(select(Certificate).where(Certificate.id == certificate_id)).execution_options(
        populate_existing=True
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def find_by_number(db: AsyncSession, number: str) -> Certificate | None:
    stmt = _with_relations(select(Certificate).where(Certificate.number == number))
    return (await db.execute(stmt)).scalar_one_or_none()


async def find_active_certificate(db: AsyncSession, user_id: int, course_id: int) -> Certificate | None:
    stmt = select(Certificate).where(
        Certificate.user_id == user_id,
        Certificate.course_id == course_id,
        Certificate.revoked_at.is_(None),
    )
    return (await db.execute(stmt)).scalars().first()


def _can_see(user: User, cert: Certificate) -> bool:
    return cert.user_id == user.id or user.has_any_role(ELEVATED_ROLES)


async def get_certificate(db: AsyncSession, user: User, certificate_id: int) -> Certificate:
    cert = await load_certificate(db, certificate_id)
    if not cert:
        raise NotFound("Certificate not found")
    if not _can_see(user, cert):
        raise Forbidden()
    return cert


async def list_certificates(
    db: AsyncSession,
    user: User,
    *,
    user_id: int | None = None,
    course_id: int | None = None,
    status: str | None = None,
) -> list[Certificate]:
    elevated = user.has_any_role(ELEVATED_ROLES)

    # Regular users can only see their own certificates
    if not elevated and user_id is not None and user_id != user.id:
        raise Forbidden()
    if user_id is None and not elevated:
        user_id = user.id

    stmt = _with_relations(select(Certificate))
    if user_id is not None:
        stmt = stmt.where(Certificate.user_id == user_id)
    if course_id is not None:
        stmt = stmt.where(Certificate.course_id == course_id)

    now = datetime.now(timezone.utc)
    if status == STATUS_EXPIRED:
        stmt = stmt.where(Certificate.expiry_at < now, Certificate.revoked_at.is_(None))
    elif status == STATUS_REVOKED:
        stmt = stmt.where(Certificate.revoked_at.is_not(None))
    elif status == STATUS_ACTIVE:
        stmt = stmt.where(
            Certificate.revoked_at.is_(None),
            or_(Certificate.expiry_at.is_(None), Certificate.expiry_at >= now),
        )
    elif status is not None:
        raise ValidationError("status must be one of active, expired, revoked")

    stmt = stmt.order_by(Certificate.issued_at.desc(), Certificate.id.desc())
    return list((await db.execute(stmt)).scalars().all())


async def certificate_file(db: AsyncSession, user: User, certificate_id: int) -> tuple[Certificate, Path]:
    cert = await get_certificate(db, user, certificate_id)
    path = await anyio.to_thread.run_sync(cert_storage.pdf_path_for, cert.pdf_url, cert.number)
    if path is None:
        logger.warning("PDF missing on disk for certificate %s (%s)", cert.id, cert.number)
        raise NotFound("Certificate file not found")
    return cert, path


# =========================================================
# ----------------------- LIFECYCLE -----------------------
# =========================================================

async def revoke_certificate(db: AsyncSession, admin: User, certificate_id: int, reason: str) -> Certificate:
    """
    Terminal. A second call keeps the first revoked_at and reason.
    Artifacts stay on disk; the number stays taken.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")

    cert = await load_certificate(db, certificate_id)
    if not cert:
        raise NotFound("Certificate not found")

    if cert.revoked_at is not None:
        logger.info("Certificate %s already revoked, leaving as is", cert.number)
        return cert

    cert.revoked_at = datetime.now(timezone.utc)
    cert.revoke_reason = reason
    await db.flush()

    logger.info("Certificate %s revoked by user %s: %s", cert.number, admin.id, reason)
    return cert


async def verify_certificate(db: AsyncSession, number: str) -> dict | None:
    """Public lookup. None means no such number."""
    cert = await find_by_number(db, number)
    if not cert:
        return None

    now = datetime.now(timezone.utc)
    expired = is_expired(cert, now)
    revoked = is_revoked(cert)
    return {
        "valid": not expired and not revoked,
        "status": certificate_status(cert, now),
        "is_expired": expired,
        "is_revoked": revoked,
        "certificate": certificate_out(cert, now, include_email=False),
    }


# =========================================================
# ----------------------- ISSUANCE ------------------------
# =========================================================

async def _resolve_expiry_days(
    db: AsyncSession,
    template: CertificateTemplate | None,
    course: Course,
) -> int | None:
    if template is not None and template.default_expiry_days is not None:
        return template.default_expiry_days
    if course.certificate_expiry_days is not None:
        return course.certificate_expiry_days
    return (await load_course_defaults(db)).default_certificate_expiry_days


def _render_and_store(
    *,
    number: str,
    verify_url: str,
    recipient_name: str,
    course_title: str,
    score: int,
    max_score: int,
    issued_at: datetime,
    branding: Branding,
    design: TemplateDesign,
) -> None:
    """QR first (the PDF embeds it), then the PDF. Both are on disk when this returns."""
    cert_storage.ensure_dirs()

    qr_png = render_qr_png(verify_url)
    cert_storage.write_qr(number, qr_png)

    pdf_bytes = build_certificate_pdf(
        recipient_name=recipient_name,
        course_title=course_title,
        score=score,
        max_score=max_score,
        certificate_no=number,
        issued_at=issued_at,
        qr_png=qr_png,
        branding=branding,
        design=design,
    )
    cert_storage.write_pdf(number, pdf_bytes)


async def issue_certificate(
    db: AsyncSession,
    *,
    user_id: int,
    course_id: int,
    score: int,
    max_score: int,
    template_id: int | None = None,
    expiry_days: int | None = None,
    branding: Branding | None = None,
) -> Certificate:
    """
    Render artifacts, then write the ledger row.

    Returns the existing certificate when (user, course) already holds an
    active one. The row is only flushed; the request session commits it.
    """
    if expiry_days is not None and expiry_days < 0:
        raise ValidationError("expiryDays must be >= 0")

    user = await db.get(User, user_id)
    course = await db.get(Course, course_id)
    if not user or not course:
        raise NotFound("User or course not found")

    template = None
    if template_id is not None:
        template = await db.get(CertificateTemplate, template_id)
        if not template:
            raise NotFound("Certificate template not found")

    existing = await find_active_certificate(db, user_id, course_id)
    if existing:
        logger.info("User %s already holds certificate %s for course %s", user_id, existing.number, course_id)
        return existing

    if expiry_days is None:
        expiry_days = await _resolve_expiry_days(db, template, course)
    if branding is None:
        branding = (await load_branding(db)).to_branding()
    design = TemplateDesign.from_json(template.design_json if template else None)

    # plain values: a rollback below expires the ORM objects
    recipient_name = user.name
    course_title = course.title
    resolved_template_id = template.id if template else None

    for _ in range(MAX_NUMBER_ATTEMPTS):
        number = generate_certificate_number()
        issued_at = datetime.now(timezone.utc)

        try:
            await anyio.to_thread.run_sync(partial(
                _render_and_store,
                number=number,
                verify_url=build_verify_url(number),
                recipient_name=recipient_name,
                course_title=course_title,
                score=score,
                max_score=max_score,
                issued_at=issued_at,
                branding=branding,
                design=design,
            ))
        except CertificateGenerationError:
            logger.exception("Certificate artifacts for %s could not be stored", number)
            raise
        except Exception as e:
            logger.exception("Certificate rendering failed for %s", number)
            raise CertificateGenerationError() from e

        cert = Certificate(
            number=number,
            user_id=user_id,
            course_id=course_id,
            template_id=resolved_template_id,
            issued_at=issued_at,
            expiry_at=issued_at + timedelta(days=expiry_days) if expiry_days is not None else None,
            pdf_url=cert_storage.pdf_url(number),
            qr_code_url=cert_storage.qr_url(number),
        )
        db.add(cert)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            existing = await find_active_certificate(db, user_id, course_id)
            if existing:
                logger.info("Concurrent issuance for user %s course %s, returning %s", user_id, course_id, existing.number)
                return existing
            logger.warning("Certificate number %s rejected by the ledger, retrying", number)
            continue

        logger.info("Issued certificate %s to user %s for course %s", number, user_id, course_id)
        return cert

    raise CertificateGenerationError("Could not allocate a unique certificate number")


async def maybe_issue_for_completion(
    db: AsyncSession,
    *,
    user_id: int,
    course_id: int,
    score: int,
    max_score: int,
) -> Certificate | None:
    """
    After a passing attempt: certify and complete the enrollment when the course
    issues certificates and every lesson is done.
    """
    course = await db.get(Course, course_id)
    if course is None or not course.certificate_enabled:
        return None

    enrollment = await get_open_enrollment(db, user_id, course_id)
    if enrollment is None:
        return None

    if not await course_lessons_completed(db, user_id, course_id):
        return None

    template_id = course.certificate_template_id
    if template_id is not None and await db.get(CertificateTemplate, template_id) is None:
        logger.warning("Course %s points at missing template %s, using defaults", course_id, template_id)
        template_id = None

    cert = await issue_certificate(
        db,
        user_id=user_id,
        course_id=course_id,
        score=score,
        max_score=max_score,
        template_id=template_id,
    )

    # re-read: issuance may have rolled the session back
    enrollment = await get_open_enrollment(db, user_id, course_id)
    if enrollment is not None:
        complete_enrollment(enrollment, cert.id)
        await db.flush()

    return cert
