"""Integration tests for the SQLAlchemy system log repository."""

from __future__ import annotations

import logging

import pytest
from sqlalchemy import select

from aijobs.schema.system_logs import SystemLog
from aijobs.storage.postgres_system_logs_repo import PostgresSystemLogRepository
from aijobs.storage.system_logs_repo import SystemLogRecord
from aijobs.telemetry.context import execution_context
from aijobs.telemetry.events import configure_system_log_persistence, flush_system_logs, log_event


@pytest.mark.anyio
async def test_insert_record_persists_every_column(session_factory) -> None:
  repo = PostgresSystemLogRepository(session_factory)
  record = SystemLogRecord(
    level="error",
    message="ai_jobs.worker.failed",
    request_id="req-1",
    job_id="job-1",
    adventure_quest_id="aq-1",
    status_code=200,
    duration_ms=42,
    error_name="RuntimeError",
    error_message="model overloaded",
    metadata={"attempts": 3, "error_kind": "execution"},
  )

  row_id = await repo.insert_record(record)

  async with session_factory() as session:
    row = await session.get(SystemLog, row_id)
  assert row.level == "error"
  assert row.request_id == "req-1"
  assert row.adventure_quest_id == "aq-1"
  assert row.error_name == "RuntimeError"
  assert row.metadata_json == {"attempts": 3, "error_kind": "execution"}
  assert row.created_at is not None


@pytest.mark.anyio
async def test_log_event_writes_through_to_the_table(session_factory) -> None:
  configure_system_log_persistence(PostgresSystemLogRepository(session_factory))
  try:
    with execution_context({"request_id": "req-7", "job_id": "job-7"}):
      log_event(logging.getLogger("aijobs.test"), "success", "ai_jobs.worker.done", status_code=200)
    await flush_system_logs()
  finally:
    configure_system_log_persistence(None)

  async with session_factory() as session:
    rows = (await session.execute(select(SystemLog))).scalars().all()
  assert [(row.message, row.request_id, row.job_id, row.status_code) for row in rows] == [("ai_jobs.worker.done", "req-7", "job-7", 200)]
