"""Test doubles shared across the suite."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any

from aijobs.config import Settings
from aijobs.jobs.models import JobRecord, can_transition
from aijobs.services.tasks.interface import TaskPublishError

WORKER_SECRET = "test-worker-secret"


def _now() -> datetime:
  return datetime.now(UTC)


class InMemoryJobsRepo:
  """In-memory jobs repository mirroring the conditional updates of the Postgres one."""

  def __init__(self) -> None:
    self._jobs: dict[str, JobRecord] = {}
    self.calls: list[str] = []

  def seed(self, record: JobRecord) -> JobRecord:
    self._jobs[record.id] = record
    return record

  async def create_job(self, record: JobRecord) -> JobRecord:
    self.calls.append("create_job")
    now = record.created_at or _now()
    stored = replace(record, status="queued", attempts=0, created_at=now, updated_at=now)
    self._jobs[stored.id] = stored
    return replace(stored)

  async def get_job(self, job_id: str) -> JobRecord | None:
    self.calls.append("get_job")
    record = self._jobs.get(job_id)
    return replace(record) if record is not None else None

  async def claim_job(self, job_id: str, *, worker_id: str, lease_seconds: int | None, now: datetime | None = None) -> JobRecord | None:
    self.calls.append("claim_job")
    record = self._jobs.get(job_id)
    if record is None or record.status != "queued":
      return None
    now = now or _now()
    lease_until = now + timedelta(seconds=lease_seconds) if lease_seconds else None
    return self._move(record, "running", locked_at=now, locked_by=worker_id, lease_until=lease_until, started_at=now, updated_at=now)

  def _held(self, job_id: str, locked_by: str) -> JobRecord | None:
    record = self._jobs.get(job_id)
    if record is None or record.status != "running" or record.locked_by != locked_by:
      return None
    return record

  async def mark_done(self, job_id: str, *, locked_by: str, result: dict[str, Any], now: datetime | None = None) -> JobRecord | None:
    self.calls.append("mark_done")
    record = self._held(job_id, locked_by)
    if record is None:
      return None
    now = now or _now()
    return self._move(record, "done", result=result, error_message=None, finished_at=now, locked_at=None, locked_by=None, lease_until=None, updated_at=now)

  async def requeue_job(self, job_id: str, *, locked_by: str, attempts: int, error_message: str, now: datetime | None = None) -> JobRecord | None:
    self.calls.append("requeue_job")
    record = self._held(job_id, locked_by)
    if record is None:
      return None
    now = now or _now()
    return self._move(record, "queued", attempts=attempts, error_message=error_message, locked_at=None, locked_by=None, lease_until=None, updated_at=now)

  async def mark_failed(self, job_id: str, *, locked_by: str, attempts: int, error_message: str, now: datetime | None = None) -> JobRecord | None:
    self.calls.append("mark_failed")
    record = self._held(job_id, locked_by)
    if record is None:
      return None
    now = now or _now()
    return self._move(record, "error", attempts=attempts, error_message=error_message, finished_at=now, locked_at=None, locked_by=None, lease_until=None, updated_at=now)

  async def list_jobs(self, *, user_id: str, status: str | None = None, job_type: str | None = None, limit: int = 50) -> list[JobRecord]:
    self.calls.append("list_jobs")
    records = [record for record in self._jobs.values() if record.user_id == user_id]
    if status:
      records = [record for record in records if record.status == status]
    if job_type:
      records = [record for record in records if record.job_type == job_type]
    records.sort(key=lambda record: (record.created_at or _now(), record.id), reverse=True)
    return [replace(record) for record in records[:limit]]

  async def find_expired_leases(self, *, now: datetime, limit: int = 50) -> list[JobRecord]:
    self.calls.append("find_expired_leases")
    expired = [record for record in self._jobs.values() if record.status == "running" and record.lease_until is not None and record.lease_until < now]
    expired.sort(key=lambda record: record.lease_until)
    return [replace(record) for record in expired[:limit]]

  async def take_over_expired_lease(self, job_id: str, *, recovery_id: str, now: datetime) -> JobRecord | None:
    self.calls.append("take_over_expired_lease")
    record = self._jobs.get(job_id)
    if record is None or record.status != "running" or record.lease_until is None or record.lease_until >= now:
      return None
    return self._store(replace(record, locked_at=now, locked_by=recovery_id, lease_until=now + timedelta(seconds=60), updated_at=now))

  def _move(self, record: JobRecord, target: str, **changes: Any) -> JobRecord:
    assert can_transition(record.status, target), f"illegal transition {record.status} -> {target}"
    return self._store(replace(record, status=target, **changes))

  def _store(self, record: JobRecord) -> JobRecord:
    self._jobs[record.id] = record
    return replace(record)


class RecordingPublisher:
  """Scheduler bridge double that records every publish call."""

  def __init__(self, *, fail: bool = False) -> None:
    self.published: list[dict[str, Any]] = []
    self.fail = fail

  async def publish(self, *, url: str, deduplication_id: str, body: dict[str, Any], delay_seconds: int | None = None) -> None:
    if self.fail:
      raise TaskPublishError("scheduler unavailable")
    self.published.append({"url": url, "deduplication_id": deduplication_id, "body": body, "delay_seconds": delay_seconds})


class StubHandler:
  """Handler double that returns a fixed result or raises a fixed error."""

  def __init__(self, job_type: str, *, result: Any = None, error: BaseException | None = None, required_fields: tuple[str, ...] = ()) -> None:
    self.job_type = job_type
    self.required_fields = required_fields
    self.result = {"ok": True} if result is None else result
    self.error = error
    self.seen: list[JobRecord] = []

  async def handle(self, job: JobRecord) -> dict[str, Any]:
    self.seen.append(job)
    if self.error is not None:
      raise self.error
    return self.result


def build_settings(**overrides: Any) -> Settings:
  """Return deterministic settings independent of the process environment."""
  values: dict[str, Any] = {
    "debug": False,
    "log_max_bytes": 1024 * 1024,
    "log_backup_count": 1,
    "log_http_4xx": False,
    "persist_system_logs": False,
    "pg_dsn": None,
    "pg_connect_timeout": 5,
    "worker_secret": WORKER_SECRET,
    "base_url": "http://test",
    "worker_id": "worker:test",
    "job_lease_seconds": 900,
    "default_max_attempts": 3,
    "default_priority": 50,
    "task_service_provider": "local-http",
    "qstash_url": "https://qstash.example",
    "qstash_token": None,
    "cloud_tasks_queue_path": None,
    "cloud_run_invoker_service_account": None,
    "briefing_service_url": None,
    "briefing_timeout_seconds": 30,
  }
  values.update(overrides)
  return Settings(**values)


def make_job(job_id: str = "job-1", **overrides: Any) -> JobRecord:
  values: dict[str, Any] = {"id": job_id, "job_type": "echo", "status": "queued", "user_id": "user-1", "payload": {}, "attempts": 0, "max_attempts": 3, "created_at": _now()}
  values.update(overrides)
  return JobRecord(**values)


