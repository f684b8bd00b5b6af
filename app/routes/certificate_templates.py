import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_admin
from app.core.errors import NotFound
from app.models.certificate import Certificate, CertificateTemplate
from app.models.course import Course
from app.models.user import User
from app.schemas.certificate import TemplateCreateIn, TemplateOut, TemplateUpdateIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/certificate-templates", tags=["Admin - Certificate Templates"])


async def _get_template(db: AsyncSession, template_id: int) -> CertificateTemplate:
    tpl = await db.get(CertificateTemplate, template_id)
    if not tpl:
        raise NotFound("Template not found")
    return tpl


@router.get("", response_model=list[TemplateOut])
async def list_templates(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    res = await db.execute(select(CertificateTemplate).order_by(CertificateTemplate.id))
    return res.scalars().all()


@router.post("", response_model=TemplateOut, status_code=status.HTTP_201_CREATED)
async def create_template(
    payload: TemplateCreateIn,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    tpl = CertificateTemplate(
        name=payload.name.strip(),
        description=payload.description,
        default_expiry_days=payload.default_expiry_days,
        design_json=payload.design_json,
    )
    db.add(tpl)
    await db.flush()
    await db.refresh(tpl)
    logger.info("Certificate template %s created by user %s", tpl.id, admin.id)
    return tpl


@router.get("/{template_id}", response_model=TemplateOut)
async def get_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return await _get_template(db, template_id)


@router.patch("/{template_id}", response_model=TemplateOut)
async def update_template(
    template_id: int,
    payload: TemplateUpdateIn,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    tpl = await _get_template(db, template_id)

    data = payload.model_dump(exclude_unset=True)
    if data.get("name") is not None:
        tpl.name = data["name"].strip()
    if "description" in data:
        tpl.description = data["description"]
    if "default_expiry_days" in data:
        tpl.default_expiry_days = data["default_expiry_days"]
    if data.get("design_json") is not None:
        tpl.design_json = data["design_json"]

    await db.flush()
    await db.refresh(tpl)
    return tpl


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    tpl = await _get_template(db, template_id)

    # issued certificates keep their artifacts; they just lose the link
    await db.execute(update(Certificate).where(Certificate.template_id == tpl.id).values(template_id=None))
    await db.execute(update(Course).where(Course.certificate_template_id == tpl.id).values(certificate_template_id=None))
    await db.delete(tpl)
    await db.flush()

    logger.info("Certificate template %s deleted by user %s", template_id, admin.id)
