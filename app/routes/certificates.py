import logging

import anyio
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import cert_storage
from app.core.database import get_db
from app.core.dependencies import get_current_admin, get_current_user
from app.core.errors import NotFound
from app.controllers.certificates_controller import (
    certificate_file,
    certificate_out,
    get_certificate,
    issue_certificate,
    list_certificates,
    load_certificate,
    revoke_certificate,
    verify_certificate,
)
from app.models.user import User
from app.schemas.certificate import (
    CertificateEnvelopeOut,
    CertificateIssueIn,
    CertificateListOut,
    CertificateRevokeIn,
    CertificateVerifyOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/certificates", tags=["Certificates"])


# =========================================================
# ---------------------- PUBLIC ---------------------------
# =========================================================

@router.get("/verify/{number}", response_model=CertificateVerifyOut)
async def verify_certificate_api(number: str, db: AsyncSession = Depends(get_db)):
    """
    Anonymous lookup by certificate number.
    404 -> no such number; 200 with valid=false -> found but expired/revoked.
    """
    try:
        result = await verify_certificate(db, number)
    except Exception:
        logger.exception("Verify certificate %s failed", number)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"valid": False, "error": "Internal server error"},
        )

    if result is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"valid": False, "error": "Certificate not found"},
        )
    return result


@router.get("/files/{filename}")
async def certificate_pdf_file(filename: str):
    path = await anyio.to_thread.run_sync(cert_storage.resolve_pdf, filename)
    if path is None:
        raise NotFound("Certificate not found")
    return FileResponse(
        path,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'inline; filename="{filename}"',
            "Cache-Control": "public, max-age=31536000, immutable",
        },
    )


@router.get("/qrcodes/{filename}")
async def certificate_qr_file(filename: str):
    path = await anyio.to_thread.run_sync(cert_storage.resolve_qr, filename)
    if path is None:
        raise NotFound("QR code not found")
    return FileResponse(
        path,
        media_type="image/png",
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )


# =========================================================
# ------------------- AUTHENTICATED -----------------------
# =========================================================

@router.get("", response_model=CertificateListOut)
async def list_certificates_api(
    user_id: int | None = Query(None, alias="userId"),
    course_id: int | None = Query(None, alias="courseId"),
    status_filter: str | None = Query(None, alias="status", pattern="^(active|expired|revoked)$"),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    certs = await list_certificates(db, user, user_id=user_id, course_id=course_id, status=status_filter)
    return {"certificates": [certificate_out(c) for c in certs]}


@router.post("", response_model=CertificateEnvelopeOut, status_code=status.HTTP_201_CREATED)
async def issue_certificate_api(
    payload: CertificateIssueIn,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    cert = await issue_certificate(
        db,
        user_id=payload.user_id,
        course_id=payload.course_id,
        score=payload.score,
        max_score=payload.max_score,
        template_id=payload.template_id,
        expiry_days=payload.expiry_days,
    )
    return {"certificate": certificate_out(await load_certificate(db, cert.id))}


@router.get("/{certificate_id}", response_model=CertificateEnvelopeOut)
async def get_certificate_api(
    certificate_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cert = await get_certificate(db, user, certificate_id)
    return {"certificate": certificate_out(cert)}


@router.patch("/{certificate_id}", response_model=CertificateEnvelopeOut)
async def revoke_certificate_api(
    certificate_id: int,
    payload: CertificateRevokeIn,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    cert = await revoke_certificate(db, admin, certificate_id, payload.reason)
    return {"certificate": certificate_out(cert), "message": "Certificate revoked"}


@router.get("/{certificate_id}/download")
async def download_certificate_api(
    certificate_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cert, path = await certificate_file(db, user, certificate_id)
    return FileResponse(
        path,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{cert.number}.pdf"'},
    )
