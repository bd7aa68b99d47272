"""create schedule tables

Revision ID: 20261018_0001
Revises: None
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "period_templates",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("active_days", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_period_templates_organization_id", "period_templates", ["organization_id"])
    op.create_index(
        "uq_period_templates_single_default",
        "period_templates",
        ["organization_id"],
        unique=True,
        sqlite_where=sa.text("is_default = 1"),
        postgresql_where=sa.text("is_default"),
    )

    op.create_table(
        "period_template_slots",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "template_id",
            sa.String(length=36),
            sa.ForeignKey("period_templates.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_number", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("is_break", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("break_name", sa.String(length=60), nullable=True),
    )
    op.create_index("ix_period_template_slots_template_id", "period_template_slots", ["template_id"])

    op.create_table(
        "periods",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("period_number", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=True),
        sa.Column("teacher_id", sa.String(length=36), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "organization_id", "batch_id", "day_of_week", "period_number", name="uq_periods_batch_day_period"
        ),
        sa.UniqueConstraint(
            "organization_id", "teacher_id", "day_of_week", "start_time", name="uq_periods_teacher_day_start"
        ),
    )
    op.create_index("ix_periods_organization_id", "periods", ["organization_id"])
    op.create_index("ix_periods_batch_id", "periods", ["batch_id"])
    op.create_index("ix_periods_teacher_id", "periods", ["teacher_id"])

    op.create_table(
        "batch_schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("template_id", sa.String(length=36), nullable=True),
        sa.Column("template_version", sa.Integer(), nullable=True),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("compiled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("organization_id", "batch_id", name="uq_batch_schedules_batch"),
    )
    op.create_index("ix_batch_schedules_organization_id", "batch_schedules", ["organization_id"])

    op.create_table(
        "schedule_activity",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=60), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_schedule_activity_organization_id", "schedule_activity", ["organization_id"])
    op.create_index("ix_schedule_activity_batch_id", "schedule_activity", ["batch_id"])


def downgrade() -> None:
    op.drop_index("ix_schedule_activity_batch_id", table_name="schedule_activity")
    op.drop_index("ix_schedule_activity_organization_id", table_name="schedule_activity")
    op.drop_table("schedule_activity")
    op.drop_index("ix_batch_schedules_organization_id", table_name="batch_schedules")
    op.drop_table("batch_schedules")
    op.drop_index("ix_periods_teacher_id", table_name="periods")
    op.drop_index("ix_periods_batch_id", table_name="periods")
    op.drop_index("ix_periods_organization_id", table_name="periods")
    op.drop_table("periods")
    op.drop_index("ix_period_template_slots_template_id", table_name="period_template_slots")
    op.drop_table("period_template_slots")
    op.drop_index("uq_period_templates_single_default", table_name="period_templates")
    op.drop_index("ix_period_templates_organization_id", table_name="period_templates")
    op.drop_table("period_templates")
