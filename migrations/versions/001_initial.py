"""Create automations and execution_records tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# JSONB on PostgreSQL, generic JSON elsewhere.
_JSON = sa.JSON().with_variant(JSONB(), "postgresql")

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "automations",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("trigger_type", sa.String(32), nullable=False),
        sa.Column("trigger_config", _JSON, nullable=False),
        sa.Column("action_type", sa.String(32), nullable=False),
        sa.Column("action_config", _JSON, nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("invalid_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_run", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run", sa.DateTime(timezone=True), nullable=True),
        sa.Column("execution_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cancelled_count", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_automations")),
        sa.CheckConstraint("NOT is_active OR status = 'active'", name="ck_automations_active_status"),
        comment="Owner-defined trigger-to-action rules",
    )
    op.create_index(op.f("ix_automations_owner_id"), "automations", ["owner_id"])
    op.create_index("idx_automations_owner_active", "automations", ["owner_id", "is_active"])
    op.create_index(
        "idx_automations_schedule_due",
        "automations",
        ["trigger_type", "is_active", "next_run"],
    )

    op.create_table(
        "execution_records",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("automation_id", sa.String(36), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error_kind", sa.String(16), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("trigger_payload", _JSON, nullable=False),
        sa.Column("action_result", _JSON, nullable=True),
        sa.Column("metadata", _JSON, nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_execution_records")),
        comment="Append-only execution records of automations",
    )
    op.create_index(op.f("ix_execution_records_owner_id"), "execution_records", ["owner_id"])
    op.create_index("idx_exec_owner_started", "execution_records", ["owner_id", "started_at"])
    op.create_index("idx_exec_owner_status", "execution_records", ["owner_id", "status"])
    op.create_index("idx_exec_automation", "execution_records", ["automation_id", "started_at"])


def downgrade() -> None:
    op.drop_index("idx_exec_automation", table_name="execution_records")
    op.drop_index("idx_exec_owner_status", table_name="execution_records")
    op.drop_index("idx_exec_owner_started", table_name="execution_records")
    op.drop_index(op.f("ix_execution_records_owner_id"), table_name="execution_records")
    op.drop_table("execution_records")
    op.drop_index("idx_automations_schedule_due", table_name="automations")
    op.drop_index("idx_automations_owner_active", table_name="automations")
    op.drop_index(op.f("ix_automations_owner_id"), table_name="automations")
    op.drop_table("automations")
