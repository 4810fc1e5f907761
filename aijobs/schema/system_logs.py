from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from aijobs.core.database import Base
from aijobs.schema.jobs import JsonDocument


class SystemLog(Base):
  __tablename__ = "system_logs"
  __table_args__ = (
    Index("ix_system_logs_created_at", "created_at"),
    Index("ix_system_logs_request_id", "request_id"),
    Index("ix_system_logs_job_id", "job_id"),
    Index("ix_system_logs_level_created", "level", "created_at"),
  )

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  level: Mapped[str] = mapped_column(String, nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  request_id: Mapped[str | None] = mapped_column(String, nullable=True)
  trace_id: Mapped[str | None] = mapped_column(String, nullable=True)
  route: Mapped[str | None] = mapped_column(String, nullable=True)
  method: Mapped[str | None] = mapped_column(String, nullable=True)
  status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
  duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
  job_id: Mapped[str | None] = mapped_column(String, nullable=True)
  job_type: Mapped[str | None] = mapped_column(String, nullable=True)
  session_id: Mapped[str | None] = mapped_column(String, nullable=True)
  user_id: Mapped[str | None] = mapped_column(String, nullable=True)
  chapter_id: Mapped[str | None] = mapped_column(String, nullable=True)
  adventure_id: Mapped[str | None] = mapped_column(String, nullable=True)
  chapter_quest_id: Mapped[str | None] = mapped_column(String, nullable=True)
  adventure_quest_id: Mapped[str | None] = mapped_column(String, nullable=True)
  source: Mapped[str | None] = mapped_column(String, nullable=True)
  file: Mapped[str | None] = mapped_column(String, nullable=True)
  line: Mapped[int | None] = mapped_column(Integer, nullable=True)
  function_name: Mapped[str | None] = mapped_column(String, nullable=True)
  error_name: Mapped[str | None] = mapped_column(String, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  stack: Mapped[str | None] = mapped_column(Text, nullable=True)
  # "metadata" is reserved on declarative classes.
  metadata_json: Mapped[dict[str, Any]] = mapped_column("metadata", JsonDocument, nullable=False, default=dict)
