"""Create the system_logs table for persisted structured events.

Revision ID: b3e91d7c5a10
Revises: 6a1f0c9d2e47
Create Date: 2026-10-18 11:30:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "b3e91d7c5a10"
down_revision = "6a1f0c9d2e47"
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "system_logs",
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.Column("level", sa.String(), nullable=False),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("request_id", sa.String(), nullable=True),
    sa.Column("trace_id", sa.String(), nullable=True),
    sa.Column("route", sa.String(), nullable=True),
    sa.Column("method", sa.String(), nullable=True),
    sa.Column("status_code", sa.Integer(), nullable=True),
    sa.Column("duration_ms", sa.Integer(), nullable=True),
    sa.Column("job_id", sa.String(), nullable=True),
    sa.Column("job_type", sa.String(), nullable=True),
    sa.Column("session_id", sa.String(), nullable=True),
    sa.Column("user_id", sa.String(), nullable=True),
    sa.Column("chapter_id", sa.String(), nullable=True),
    sa.Column("adventure_id", sa.String(), nullable=True),
    sa.Column("chapter_quest_id", sa.String(), nullable=True),
    sa.Column("adventure_quest_id", sa.String(), nullable=True),
    sa.Column("source", sa.String(), nullable=True),
    sa.Column("file", sa.String(), nullable=True),
    sa.Column("line", sa.Integer(), nullable=True),
    sa.Column("function_name", sa.String(), nullable=True),
    sa.Column("error_name", sa.String(), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("stack", sa.Text(), nullable=True),
    sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
  )
  op.create_index("ix_system_logs_created_at", "system_logs", ["created_at"], unique=False)
  op.create_index("ix_system_logs_request_id", "system_logs", ["request_id"], unique=False)
  op.create_index("ix_system_logs_job_id", "system_logs", ["job_id"], unique=False)
  op.create_index("ix_system_logs_level_created", "system_logs", ["level", "created_at"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_system_logs_level_created", table_name="system_logs")
  op.drop_index("ix_system_logs_job_id", table_name="system_logs")
  op.drop_index("ix_system_logs_request_id", table_name="system_logs")
  op.drop_index("ix_system_logs_created_at", table_name="system_logs")
  op.drop_table("system_logs")
