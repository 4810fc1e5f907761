from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from aijobs.core.database import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class AiJob(Base):
  __tablename__ = "ai_jobs"
  __table_args__ = (
    CheckConstraint("status IN ('queued', 'running', 'done', 'error', 'cancelled')", name="ck_ai_jobs_status"),
    CheckConstraint("attempts >= 0 AND max_attempts >= 1", name="ck_ai_jobs_attempts"),
    Index("ix_ai_jobs_user_created", "user_id", "created_at"),
    Index("ix_ai_jobs_running_lease", "lease_until", postgresql_where=text("status = 'running'")),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str | None] = mapped_column(String, nullable=True)
  session_id: Mapped[str | None] = mapped_column(String, nullable=True)
  chapter_id: Mapped[str | None] = mapped_column(String, nullable=True)
  adventure_id: Mapped[str | None] = mapped_column(String, nullable=True)
  chapter_quest_id: Mapped[str | None] = mapped_column(String, nullable=True)
  job_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
  payload: Mapped[dict] = mapped_column(JsonDocument, nullable=False, default=dict)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True, server_default="queued")
  priority: Mapped[int] = mapped_column(Integer, nullable=False, server_default="50")
  attempts: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
  max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, server_default="3")
  locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  locked_by: Mapped[str | None] = mapped_column(String, nullable=True)
  lease_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  result: Mapped[dict | None] = mapped_column(JsonDocument, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
