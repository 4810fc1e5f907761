"""Failure classification, backoff and requeue/terminal decisions for failed job cycles."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final, Literal

from aijobs.jobs.errors import JobEngineError, error_kind
from aijobs.jobs.models import JobRecord
from aijobs.services.tasks.interface import TaskPublisher
from aijobs.storage.jobs_repo import JobsRepository
from aijobs.telemetry.events import log_event

logger = logging.getLogger(__name__)

# Seconds before retry n (1-based); attempts past the end reuse the last entry.
BACKOFF_TABLE_SECONDS: Final[tuple[int, ...]] = (15, 60, 180, 600, 1800)

_MAX_ERROR_MESSAGE_CHARS = 4000


class ClaimLostError(JobEngineError):
  """Raised when an outcome write finds the row no longer held by this invocation."""


@dataclass(frozen=True)
class RetryOutcome:
  """Persisted result of one failed execution cycle."""

  status: Literal["queued", "error"]
  attempts: int
  retried: bool
  retry_in_seconds: int | None = None

  @property
  def http_status(self) -> int:
    return 202 if self.retried else 200

  def to_body(self) -> dict[str, object]:
    body: dict[str, object] = {"ok": False, "status": self.status, "attempts": self.attempts, "retried": self.retried}
    if self.retried:
      body["retry_in_seconds"] = self.retry_in_seconds
    return body


def backoff_seconds(attempt: int) -> int:
  """Return the delay before retry number attempt, clamped to the table bounds."""
  index = max(0, min(len(BACKOFF_TABLE_SECONDS) - 1, attempt - 1))
  return BACKOFF_TABLE_SECONDS[index]


def retry_dedup_key(job_id: str, attempt: int) -> str:
  """Dedup key unique per (job, retry cycle) so redundant pushes for one cycle collapse."""
  return f"{job_id}:retry:{attempt}"


def describe_failure(error: BaseException) -> str:
  message = str(error) or type(error).__name__
  return message[:_MAX_ERROR_MESSAGE_CHARS]


async def apply_failure_policy(
  job: JobRecord,
  error: BaseException,
  *,
  locked_by: str,
  jobs_repo: JobsRepository,
  publisher: TaskPublisher,
  worker_url: str,
  worker_secret: str | None,
) -> RetryOutcome:
  """Requeue and schedule a retry, or finalize the job as error once attempts run out.

  Store and publish failures are not caught here: they reach the caller as hard failures.
  """
  message = describe_failure(error)
  next_attempts = (job.attempts or 0) + 1
  max_attempts = job.max_attempts or 3

  if next_attempts < max_attempts:
    updated = await jobs_repo.requeue_job(job.id, locked_by=locked_by, attempts=next_attempts, error_message=message)
    if updated is None:
      raise ClaimLostError(f"Job {job.id} is no longer held by {locked_by}; requeue skipped.")

    delay = backoff_seconds(next_attempts)
    await publisher.publish(url=worker_url, deduplication_id=retry_dedup_key(job.id, next_attempts), body={"jobId": job.id, "workerSecret": worker_secret}, delay_seconds=delay)
    log_event(logger, "warning", "ai_jobs.worker.retry_scheduled", status_code=202, error=error, error_kind=error_kind(error), attempts=next_attempts, max_attempts=max_attempts, retry_in_seconds=delay)
    return RetryOutcome(status="queued", attempts=next_attempts, retried=True, retry_in_seconds=delay)

  updated = await jobs_repo.mark_failed(job.id, locked_by=locked_by, attempts=next_attempts, error_message=message)
  if updated is None:
    raise ClaimLostError(f"Job {job.id} is no longer held by {locked_by}; terminal failure not recorded.")

  log_event(logger, "error", "ai_jobs.worker.failed", status_code=200, error=error, error_kind=error_kind(error), attempts=next_attempts, max_attempts=max_attempts)
  return RetryOutcome(status="error", attempts=next_attempts, retried=False)
