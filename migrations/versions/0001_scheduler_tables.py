"""Create schedule, history and lease tables.

Revision ID: 0001_scheduler
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "0001_scheduler"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "workflow_schedules",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("namespace", sa.String(100), nullable=False),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("workflow_name", sa.String(200), nullable=False),
        sa.Column("workflow_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("schedule_kind", sa.String(20), nullable=False),
        sa.Column("cron_expression", sa.String(200), nullable=True),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_concurrent_runs", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_triggered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("payload", JSONB(), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=False, server_default="system"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("max_concurrent_runs >= 1", name="ck_schedules_max_concurrent_positive"),
        sa.CheckConstraint("workflow_version >= 1", name="ck_schedules_version_positive"),
        sa.CheckConstraint(
            "(schedule_kind = 'recurring' AND cron_expression IS NOT NULL AND run_at IS NULL) OR "
            "(schedule_kind = 'one_shot' AND run_at IS NOT NULL AND cron_expression IS NULL)",
            name="ck_schedules_kind_fields",
        ),
    )
    op.create_index("idx_schedules_status_next_run", "workflow_schedules", ["status", "next_run", "id"])
    op.create_index("idx_schedules_namespace_workflow", "workflow_schedules", ["namespace", "workflow_name"])

    op.create_table(
        "schedule_history",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("schedule_id", UUID(as_uuid=True), nullable=False),
        sa.Column("attempted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("run_id", sa.String(255), nullable=True),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_history_schedule_attempted", "schedule_history", ["schedule_id", "attempted_at"])

    op.create_table(
        "scheduler_leases",
        sa.Column("task_name", sa.String(64), primary_key=True),
        sa.Column("holder_id", sa.String(255), nullable=False),
        sa.Column("held_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("scheduler_leases")
    op.drop_index("idx_history_schedule_attempted", table_name="schedule_history")
    op.drop_table("schedule_history")
    op.drop_index("idx_schedules_namespace_workflow", table_name="workflow_schedules")
    op.drop_index("idx_schedules_status_next_run", table_name="workflow_schedules")
    op.drop_table("workflow_schedules")
