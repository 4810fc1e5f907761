"""Create the ai_jobs queue table.

Revision ID: 6a1f0c9d2e47
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "6a1f0c9d2e47"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "ai_jobs",
    sa.Column("id", sa.String(), primary_key=True),
    sa.Column("user_id", sa.String(), nullable=True),
    sa.Column("session_id", sa.String(), nullable=True),
    sa.Column("chapter_id", sa.String(), nullable=True),
    sa.Column("adventure_id", sa.String(), nullable=True),
    sa.Column("chapter_quest_id", sa.String(), nullable=True),
    sa.Column("job_type", sa.String(), nullable=False),
    sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
    sa.Column("status", sa.String(), nullable=False, server_default="queued"),
    sa.Column("priority", sa.Integer(), nullable=False, server_default="50"),
    sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
    sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("locked_by", sa.String(), nullable=True),
    sa.Column("lease_until", sa.DateTime(timezone=True), nullable=True),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("result", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.CheckConstraint("status IN ('queued', 'running', 'done', 'error', 'cancelled')", name="ck_ai_jobs_status"),
    sa.CheckConstraint("attempts >= 0 AND max_attempts >= 1", name="ck_ai_jobs_attempts"),
  )
  op.create_index("ix_ai_jobs_job_type", "ai_jobs", ["job_type"], unique=False)
  op.create_index("ix_ai_jobs_status", "ai_jobs", ["status"], unique=False)
  op.create_index("ix_ai_jobs_user_created", "ai_jobs", ["user_id", "created_at"], unique=False)
  # Lease recovery only scans running rows.
  op.create_index("ix_ai_jobs_running_lease", "ai_jobs", ["lease_until"], unique=False, postgresql_where=sa.text("status = 'running'"))


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_ai_jobs_running_lease", table_name="ai_jobs")
  op.drop_index("ix_ai_jobs_user_created", table_name="ai_jobs")
  op.drop_index("ix_ai_jobs_status", table_name="ai_jobs")
  op.drop_index("ix_ai_jobs_job_type", table_name="ai_jobs")
  op.drop_table("ai_jobs")
