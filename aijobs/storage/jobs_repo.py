"""Storage interfaces for AI jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from aijobs.jobs.models import JobRecord


class JobsRepository(Protocol):
  """Repository contract for job persistence.

  Every mutation after creation is a conditional update guarded by the row's
  current status (and, once claimed, by the claim holder in locked_by), so the
  queued -> running claim is the only place concurrent invocations can race
  and at most one of them wins.
  """

  async def create_job(self, record: JobRecord) -> JobRecord:
    """Persist an initial queued job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def claim_job(self, job_id: str, *, worker_id: str, lease_seconds: int | None, now: datetime | None = None) -> JobRecord | None:
    """Atomically move a queued job to running; return None when nothing matched."""

  async def mark_done(self, job_id: str, *, locked_by: str, result: dict[str, Any], now: datetime | None = None) -> JobRecord | None:
    """Finalize a running job as done."""

  async def requeue_job(self, job_id: str, *, locked_by: str, attempts: int, error_message: str, now: datetime | None = None) -> JobRecord | None:
    """Return a running job to the queue after a failed cycle."""

  async def mark_failed(self, job_id: str, *, locked_by: str, attempts: int, error_message: str, now: datetime | None = None) -> JobRecord | None:
    """Finalize a running job as error."""

  async def list_jobs(self, *, user_id: str, status: str | None = None, job_type: str | None = None, limit: int = 50) -> list[JobRecord]:
    """Return a user's jobs, newest first."""

  async def find_expired_leases(self, *, now: datetime, limit: int = 50) -> list[JobRecord]:
    """Return running jobs whose lease ended before now."""

  async def take_over_expired_lease(self, job_id: str, *, recovery_id: str, now: datetime) -> JobRecord | None:
    """Re-assign an expired running claim to recovery_id; None when another actor got there first."""
