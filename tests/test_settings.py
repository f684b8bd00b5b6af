"""
Tests for stored settings merged over defaults.
"""
from sqlalchemy import select, text

from app.controllers.settings_controller import (
    BrandingSettings,
    CourseDefaults,
    load_branding,
    load_course_defaults,
    merge_settings,
)
from app.models.course import Course
from app.models.setting import Setting


class TestMergeSettings:

    def test_nothing_stored(self):
        assert merge_settings(CourseDefaults(), None) == CourseDefaults()

    def test_camel_case_override(self):
        merged = merge_settings(CourseDefaults(), {"defaultPassMark": 80})
        assert merged.default_pass_mark == 80
        assert merged.default_quiz_attempts == 3

    def test_snake_case_override(self):
        merged = merge_settings(CourseDefaults(), {"default_quiz_attempts": 5})
        assert merged.default_quiz_attempts == 5

    def test_empty_values_keep_defaults(self):
        merged = merge_settings(BrandingSettings(), {"primaryColor": "", "companyName": None})
        assert merged.primary_color == BrandingSettings().primary_color
        assert merged.company_name == BrandingSettings().company_name

    def test_unknown_keys_dropped(self):
        merged = merge_settings(BrandingSettings(), {"favouriteFood": "pizza"})
        assert not hasattr(merged, "favouriteFood")

    def test_invalid_value_falls_back_to_defaults(self):
        merged = merge_settings(CourseDefaults(), {"defaultPassMark": "lots"})
        assert merged == CourseDefaults()

    def test_to_branding(self):
        branding = merge_settings(BrandingSettings(), {"primaryColor": "#123456", "companyName": "Acme"}).to_branding()
        assert branding.primary_color == "#123456"
        assert branding.company_name == "Acme"


class TestLoadSettings:

    async def test_defaults_without_rows(self, db):
        assert (await load_course_defaults(db)).default_certificate_expiry_days is None

    async def test_reads_stored_row(self, db):
        db.add(Setting(key="branding", value={"companyName": "Acme Academy"}))
        db.add(Setting(key="course", value={"defaultCertificateExpiryDays": 365}))
        await db.commit()

        assert (await load_branding(db)).company_name == "Acme Academy"
        assert (await load_course_defaults(db)).default_certificate_expiry_days == 365

    async def test_failed_read_keeps_transaction_usable(self, db, engine, session_factory):
        async with engine.begin() as conn:
            await conn.execute(text("DROP TABLE settings"))

        db.add(Course(title="Kept"))
        defaults = await load_course_defaults(db)
        await db.commit()

        assert defaults == CourseDefaults()
        async with session_factory() as s:
            titles = (await s.execute(select(Course.title))).scalars().all()
        assert titles == ["Kept"]
