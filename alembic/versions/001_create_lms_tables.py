"""create lms tables

Revision ID: 001
Revises: 
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision  = "001"
down_revision = None
branch_labels = None
depends_on    = None

enrollment_status = sa.Enum("assigned", "started", "completed", name="enrollmentstatus")
question_type = sa.Enum("single_choice", "multi_choice", "true_false", "short_answer", name="questiontype")


def upgrade() -> None:
    # ── users / roles ─────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id",         sa.Integer(),               primary_key=True, autoincrement=True),
        sa.Column("name",       sa.String(255),             nullable=False),
        sa.Column("email",      sa.String(255),             nullable=False),
        sa.Column("status",     sa.String(20),              nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_id",    "users", ["id"],    unique=False)

    op.create_table(
        "user_roles",
        sa.Column("id",      sa.Integer(),   primary_key=True),
        sa.Column("user_id", sa.Integer(),   sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role",    sa.String(32),  nullable=False),
        sa.UniqueConstraint("user_id", "role", name="uq_user_role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    # ── certificate templates / courses ───────────────────────────────
    op.create_table(
        "certificate_templates",
        sa.Column("id",                  sa.Integer(),               primary_key=True),
        sa.Column("name",                sa.String(255),             nullable=False),
        sa.Column("description",         sa.Text(),                  nullable=True),
        sa.Column("default_expiry_days", sa.Integer(),               nullable=True),
        sa.Column("design_json",         sa.JSON(),                  nullable=False),
        sa.Column("created_at",          sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at",          sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "courses",
        sa.Column("id",                      sa.Integer(),               primary_key=True),
        sa.Column("title",                   sa.String(255),             nullable=False),
        sa.Column("description",             sa.Text(),                  nullable=True),
        sa.Column("pass_mark",               sa.Integer(),               nullable=False, server_default="70"),
        sa.Column("certificate_enabled",     sa.Boolean(),               nullable=False, server_default="true"),
        sa.Column("certificate_template_id", sa.Integer(),
                  sa.ForeignKey("certificate_templates.id", ondelete="SET NULL"), nullable=True),
        sa.Column("certificate_expiry_days", sa.Integer(),               nullable=True),
        sa.Column("created_at",              sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_courses_id", "courses", ["id"])

    op.create_table(
        "course_modules",
        sa.Column("id",        sa.Integer(),   primary_key=True),
        sa.Column("course_id", sa.Integer(),   sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title",     sa.String(255), nullable=False),
        sa.Column("order",     sa.Integer(),   nullable=False, server_default="0"),
    )
    op.create_index("ix_course_modules_course_id", "course_modules", ["course_id"])

    op.create_table(
        "lessons",
        sa.Column("id",        sa.Integer(),   primary_key=True),
        sa.Column("module_id", sa.Integer(),   sa.ForeignKey("course_modules.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title",     sa.String(255), nullable=False),
        sa.Column("order",     sa.Integer(),   nullable=False, server_default="0"),
    )
    op.create_index("ix_lessons_module_id", "lessons", ["module_id"])

    op.create_table(
        "lesson_progress",
        sa.Column("id",               sa.Integer(),               primary_key=True),
        sa.Column("user_id",          sa.Integer(),               sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("lesson_id",        sa.Integer(),               sa.ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status",           sa.String(20),              nullable=False, server_default="seen"),
        sa.Column("time_spent_sec",   sa.Integer(),               nullable=False, server_default="0"),
        sa.Column("views",            sa.Integer(),               nullable=False, server_default="0"),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at",     sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "lesson_id", name="uq_progress_user_lesson"),
    )
    op.create_index("ix_lesson_progress_user_id",   "lesson_progress", ["user_id"])
    op.create_index("ix_lesson_progress_lesson_id", "lesson_progress", ["lesson_id"])

    # ── certificates ──────────────────────────────────────────────────
    op.create_table(
        "certificates",
        sa.Column("id",            sa.Integer(),               primary_key=True),
        sa.Column("number",        sa.String(64),              nullable=False),
        sa.Column("user_id",       sa.Integer(),               sa.ForeignKey("users.id"), nullable=False),
        sa.Column("course_id",     sa.Integer(),               sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("template_id",   sa.Integer(),
                  sa.ForeignKey("certificate_templates.id", ondelete="SET NULL"), nullable=True),
        sa.Column("issued_at",     sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expiry_at",     sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at",    sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoke_reason", sa.Text(),                  nullable=True),
        sa.Column("pdf_url",       sa.Text(),                  nullable=False),
        sa.Column("qr_code_url",   sa.Text(),                  nullable=True),
        sa.UniqueConstraint("number", name="uq_certificate_number"),
    )
    op.create_index("ix_certificates_user_id",   "certificates", ["user_id"])
    op.create_index("ix_certificates_course_id", "certificates", ["course_id"])
    op.create_index(
        "uq_certificate_active_user_course",
        "certificates",
        ["user_id", "course_id"],
        unique=True,
        postgresql_where=sa.text("revoked_at IS NULL"),
        sqlite_where=sa.text("revoked_at IS NULL"),
    )

    op.create_table(
        "enrollments",
        sa.Column("id",             sa.Integer(),               primary_key=True),
        sa.Column("user_id",        sa.Integer(),               sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("course_id",      sa.Integer(),               sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status",         enrollment_status,          nullable=False, server_default="assigned"),
        sa.Column("assigned_at",    sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("started_at",     sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at",   sa.DateTime(timezone=True), nullable=True),
        sa.Column("certificate_id", sa.Integer(),
                  sa.ForeignKey("certificates.id", ondelete="SET NULL"), nullable=True),
        sa.UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),
    )
    op.create_index("ix_enrollments_id",        "enrollments", ["id"])
    op.create_index("ix_enrollments_user_id",   "enrollments", ["user_id"])
    op.create_index("ix_enrollments_course_id", "enrollments", ["course_id"])

    # ── quizzes ───────────────────────────────────────────────────────
    op.create_table(
        "quizzes",
        sa.Column("id",                 sa.Integer(),   primary_key=True),
        sa.Column("course_id",          sa.Integer(),   sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title",              sa.String(255), nullable=False),
        sa.Column("attempts_allowed",   sa.Integer(),   nullable=False, server_default="3"),
        sa.Column("time_limit_sec",     sa.Integer(),   nullable=True),
        sa.Column("randomize",          sa.Boolean(),   nullable=False, server_default="false"),
        sa.Column("pass_mark_override", sa.Integer(),   nullable=True),
    )
    op.create_index("ix_quizzes_id",        "quizzes", ["id"])
    op.create_index("ix_quizzes_course_id", "quizzes", ["course_id"])

    op.create_table(
        "questions",
        sa.Column("id",               sa.Integer(), primary_key=True),
        sa.Column("quiz_id",          sa.Integer(), sa.ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type",             question_type, nullable=False),
        sa.Column("prompt_html",      sa.Text(),    nullable=False),
        sa.Column("explanation_html", sa.Text(),    nullable=True),
        sa.Column("points",           sa.Integer(), nullable=False, server_default="1"),
        sa.Column("order",            sa.Integer(), nullable=False, server_default="0"),
        sa.Column("answer_key",       sa.Text(),    nullable=True),
    )
    op.create_index("ix_questions_quiz_id", "questions", ["quiz_id"])

    op.create_table(
        "question_options",
        sa.Column("id",          sa.Integer(), primary_key=True),
        sa.Column("question_id", sa.Integer(), sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("label",       sa.Text(),    nullable=False),
        sa.Column("is_correct",  sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("order",       sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_question_options_question_id", "question_options", ["question_id"])

    op.create_table(
        "quiz_attempts",
        sa.Column("id",           sa.Integer(),               primary_key=True),
        sa.Column("quiz_id",      sa.Integer(),               sa.ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id",      sa.Integer(),               sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("attempt_no",   sa.Integer(),               nullable=False),
        sa.Column("score",        sa.Integer(),               nullable=False, server_default="0"),
        sa.Column("passed",       sa.Boolean(),               nullable=False, server_default="false"),
        sa.Column("started_at",   sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("quiz_id", "user_id", "attempt_no", name="uq_attempt_quiz_user_no"),
    )
    op.create_index("ix_quiz_attempts_id",      "quiz_attempts", ["id"])
    op.create_index("ix_quiz_attempts_quiz_id", "quiz_attempts", ["quiz_id"])
    op.create_index("ix_quiz_attempts_user_id", "quiz_attempts", ["user_id"])

    op.create_table(
        "quiz_attempt_answers",
        sa.Column("id",             sa.Integer(), primary_key=True),
        sa.Column("attempt_id",     sa.Integer(), sa.ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("question_id",    sa.Integer(), sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("option_ids",     sa.JSON(),    nullable=False),
        sa.Column("response_text",  sa.Text(),    nullable=True),
        sa.Column("is_correct",     sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("points_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )
    op.create_index("ix_quiz_attempt_answers_attempt_id", "quiz_attempt_answers", ["attempt_id"])

    # ── settings ──────────────────────────────────────────────────────
    op.create_table(
        "settings",
        sa.Column("id",         sa.Integer(),               primary_key=True),
        sa.Column("key",        sa.String(100),             nullable=False),
        sa.Column("value",      sa.JSON(),                  nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_settings_key", "settings", ["key"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_settings_key", table_name="settings")
    op.drop_table("settings")
    op.drop_table("quiz_attempt_answers")
    op.drop_table("quiz_attempts")
    op.drop_table("question_options")
    op.drop_table("questions")
    op.drop_table("quizzes")
    op.drop_table("enrollments")
    op.drop_index("uq_certificate_active_user_course", table_name="certificates")
    op.drop_table("certificates")
    op.drop_table("lesson_progress")
    op.drop_table("lessons")
    op.drop_table("course_modules")
    op.drop_table("courses")
    op.drop_table("certificate_templates")
    op.drop_table("user_roles")
    op.drop_table("users")
    question_type.drop(op.get_bind(), checkfirst=True)
    enrollment_status.drop(op.get_bind(), checkfirst=True)
