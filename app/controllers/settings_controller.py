import logging
from typing import Optional, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cert_pdf import Branding, DEFAULT_PRIMARY_COLOR
from app.core.config import settings
from app.models.setting import Setting

logger = logging.getLogger(__name__)


class _SettingsModel(BaseModel):
    # stored JSON uses camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class BrandingSettings(_SettingsModel):
    company_name: str = settings.COMPANY_NAME
    logo: Optional[str] = None
    primary_color: str = DEFAULT_PRIMARY_COLOR
    secondary_color: str = "#f97316"

    def to_branding(self) -> Branding:
        return Branding(
            primary_color=self.primary_color,
            company_name=self.company_name,
            logo=self.logo,
        )


class CourseDefaults(_SettingsModel):
    default_pass_mark: int = 70
    default_quiz_attempts: int = 3
    default_quiz_randomize: bool = False
    default_certificate_expiry_days: Optional[int] = None


S = TypeVar("S", bound=_SettingsModel)


def merge_settings(defaults: S, stored: dict | None) -> S:
    """
    Defaults overlaid with stored overrides.
    Unknown keys are dropped; None or "" never replaces a default.
    """
    if not isinstance(stored, dict):
        return defaults

    overrides = {}
    for name, field in type(defaults).model_fields.items():
        for key in (field.alias, name):
            if key in stored and stored[key] not in (None, ""):
                overrides[name] = stored[key]
                break

    try:
        return type(defaults).model_validate({**defaults.model_dump(), **overrides})
    except PydanticValidationError as e:
        logger.warning("Ignoring invalid stored settings %s: %s", sorted(overrides), e)
        return defaults


async def _load_category(db: AsyncSession, key: str) -> dict | None:
    # savepoint: a failed read must not poison the caller's transaction
    try:
        async with db.begin_nested():
            row = (await db.execute(select(Setting).where(Setting.key == key))).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.warning("Failed to load %s settings, using defaults: %s", key, e)
        return None
    return row.value if row else None


async def load_branding(db: AsyncSession) -> BrandingSettings:
    return merge_settings(BrandingSettings(), await _load_category(db, "branding"))


async def load_course_defaults(db: AsyncSession) -> CourseDefaults:
    return merge_settings(CourseDefaults(), await _load_category(db, "course"))
