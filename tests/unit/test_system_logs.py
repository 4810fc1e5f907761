"""Unit tests for persisting structured events to the system_logs table."""

from __future__ import annotations

import logging

import pytest

from aijobs.storage.system_logs_repo import SystemLogRecord
from aijobs.telemetry.context import execution_context, patch_context
from aijobs.telemetry.events import configure_system_log_persistence, flush_system_logs, log_event, log_timer

LOGGER = logging.getLogger("aijobs.test.system_logs")


class RecordingSystemLogRepo:
  def __init__(self, *, fail: bool = False) -> None:
    self.records: list[SystemLogRecord] = []
    self.fail = fail

  async def insert_record(self, record: SystemLogRecord) -> int:
    if self.fail:
      raise RuntimeError("database unavailable")
    self.records.append(record)
    return len(self.records)


@pytest.fixture
def system_logs():
  repo = RecordingSystemLogRepo()
  configure_system_log_persistence(repo)
  yield repo
  configure_system_log_persistence(None)


@pytest.mark.anyio
async def test_event_row_carries_scope_ids(system_logs: RecordingSystemLogRepo) -> None:
  with execution_context({"request_id": "req-1", "route": "/api/ai/worker/run", "method": "POST", "job_id": "job-1", "user_id": "user-1"}):
    patch_context(adventure_quest_id="aq-1")
    log_event(LOGGER, "success", "ai_jobs.worker.done", status_code=200, attempts=1)
  await flush_system_logs()

  row = system_logs.records[0]
  assert row.level == "success"
  assert row.message == "ai_jobs.worker.done"
  assert (row.request_id, row.route, row.method) == ("req-1", "/api/ai/worker/run", "POST")
  assert (row.job_id, row.user_id, row.adventure_quest_id) == ("job-1", "user-1", "aq-1")
  assert row.status_code == 200
  assert row.duration_ms is not None
  assert row.source == "aijobs.test.system_logs"
  assert row.metadata == {"attempts": 1}
  assert row.file.endswith("test_system_logs.py")
  assert row.function_name == "test_event_row_carries_scope_ids"
  assert row.error_name is None


@pytest.mark.anyio
async def test_explicit_ids_override_scope(system_logs: RecordingSystemLogRepo) -> None:
  with execution_context({"request_id": "req-1", "job_id": "job-1"}):
    log_event(LOGGER, "info", "ai_jobs.lease.recovered", job_id="job-9", source="lease-recovery")
  await flush_system_logs()

  row = system_logs.records[0]
  assert row.job_id == "job-9"
  assert row.request_id == "req-1"
  assert row.source == "lease-recovery"


@pytest.mark.anyio
async def test_error_row_keeps_name_message_and_stack(system_logs: RecordingSystemLogRepo) -> None:
  with pytest.raises(KeyError):
    with log_timer(LOGGER, "ai_jobs.test.step", job_type="echo"):
      raise KeyError("adventure_id")
  await flush_system_logs()

  row = system_logs.records[0]
  assert row.level == "error"
  assert row.message == "ai_jobs.test.step.fatal"
  assert row.error_name == "KeyError"
  assert row.error_message == "'adventure_id'"
  assert "Traceback" in row.stack
  assert row.function_name == "test_error_row_keeps_name_message_and_stack"
  assert row.metadata == {"job_type": "echo"}


@pytest.mark.anyio
async def test_failed_insert_is_logged_and_never_raised(caplog: pytest.LogCaptureFixture) -> None:
  configure_system_log_persistence(RecordingSystemLogRepo(fail=True))
  try:
    with caplog.at_level(logging.ERROR, logger="aijobs.telemetry.events"):
      log_event(LOGGER, "warning", "ai_jobs.worker.retry_scheduled", status_code=202)
      await flush_system_logs()
  finally:
    configure_system_log_persistence(None)

  assert any("system_logs insert failed" in record.getMessage() for record in caplog.records)


def test_sync_caller_without_loop_skips_persistence(system_logs: RecordingSystemLogRepo) -> None:
  log_event(LOGGER, "info", "ai_jobs.test.sync")
  assert system_logs.records == []
