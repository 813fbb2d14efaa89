"""Initial schema for the daily assessment gate

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""

import typing as t

from alembic import op
from sqlalchemy import func as f
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.schema import Column, UniqueConstraint
from sqlalchemy.types import JSON, Boolean, Date, DateTime, Integer, String

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | t.Sequence[str] | None = None
depends_on: str | t.Sequence[str] | None = None

JSONType = JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    # Per-user gate state
    op.create_table(
        "user_assessment_states",
        Column("user_id", String(22), primary_key=True),
        Column("organization_id", String(22), primary_key=True),
        Column("cycle", Date, nullable=False),
        Column("state", String(32), nullable=False),
        Column("state_changed_at", DateTime(timezone=True), nullable=False),
        Column("today", JSONType, nullable=False),
        Column("stats", JSONType, nullable=False),
        Column("current_session", JSONType, nullable=True),
        Column("last_result", JSONType, nullable=True),
        Column("create_time", DateTime(timezone=True), server_default=f.now(), nullable=False),
        Column("update_time", DateTime(timezone=True), server_default=f.now(), nullable=False),
    )
    op.create_index("ix_user_assessment_states_state", "user_assessment_states", ["state"])

    # Assessment sessions
    op.create_table(
        "assessment_sessions",
        Column("session_id", String(22), primary_key=True),
        Column("user_id", String(22), nullable=False),
        Column("organization_id", String(22), nullable=False),
        Column("framework_id", String, nullable=False),
        Column("started_at", DateTime(timezone=True), nullable=False),
        Column("deadline", DateTime(timezone=True), nullable=False),
        Column("answers", JSONType, nullable=False),
        Column("engine_session_id", String, nullable=True),
        Column("expected_questions", Integer, nullable=True),
        Column("create_time", DateTime(timezone=True), server_default=f.now(), nullable=False),
        Column("update_time", DateTime(timezone=True), server_default=f.now(), nullable=False),
    )

    # Assessment results
    op.create_table(
        "assessment_results",
        Column("session_id", String(22), primary_key=True),
        Column("user_id", String(22), nullable=False),
        Column("organization_id", String(22), nullable=False),
        Column("cycle", Date, nullable=False),
        Column("run_id", String, nullable=False),
        Column("framework_id", String, nullable=False),
        Column("scores", JSONType, nullable=False),
        Column("passed", Boolean, nullable=False),
        Column("completed_at", DateTime(timezone=True), nullable=False),
        Column("classification", String, nullable=True),
        Column("verify_url", String, nullable=True),
        Column("create_time", DateTime(timezone=True), server_default=f.now(), nullable=False),
    )
    op.create_index(
        "ix_assessment_results_user", "assessment_results", ["user_id", "organization_id", "completed_at"]
    )

    # Audit log
    op.create_table(
        "audit_log_entries",
        Column("entry_id", String(22), primary_key=True),
        Column("user_id", String(22), nullable=False),
        Column("organization_id", String(22), nullable=False),
        Column("sequence", Integer, nullable=False),
        Column("timestamp", DateTime(timezone=True), nullable=False),
        Column("event_type", String(32), nullable=False),
        Column("detail", JSONType, nullable=False),
        Column("previous_hash", String(64), nullable=False),
        Column("hash", String(64), nullable=False),
        Column("from_state", String(32), nullable=True),
        Column("to_state", String(32), nullable=True),
        Column("acting_principal", String(22), nullable=True),
        UniqueConstraint("user_id", "organization_id", "sequence"),
    )
    op.create_index(
        "ix_audit_log_entries_org_event", "audit_log_entries", ["organization_id", "event_type", "timestamp"]
    )


def downgrade() -> None:
    op.drop_index("ix_audit_log_entries_org_event", table_name="audit_log_entries")
    op.drop_table("audit_log_entries")
    op.drop_index("ix_assessment_results_user", table_name="assessment_results")
    op.drop_table("assessment_results")
    op.drop_table("assessment_sessions")
    op.drop_index("ix_user_assessment_states_state", table_name="user_assessment_states")
    op.drop_table("user_assessment_states")
