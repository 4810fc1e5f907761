"""Worker entry point: authenticate, claim, dispatch, then record success or apply the retry policy."""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from typing import Any

from aijobs.config import Settings
from aijobs.jobs.dispatch import JobHandlerRegistry, dispatch_job
from aijobs.jobs.errors import WorkerAuthorizationError, WorkerBadRequestError
from aijobs.jobs.models import JobRecord
from aijobs.jobs.retry import ClaimLostError, apply_failure_policy
from aijobs.services.tasks.interface import TaskPublisher
from aijobs.storage.jobs_repo import JobsRepository
from aijobs.telemetry.context import execution_context, get_context, patch_context
from aijobs.telemetry.events import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerOutcome:
  """HTTP-shaped result of one worker invocation."""

  status_code: int
  body: dict[str, Any]


def verify_worker_secret(supplied_secret: str | None, settings: Settings) -> None:
  """Reject the call unless a worker secret is configured and matches."""
  if not settings.worker_secret:
    raise WorkerAuthorizationError("Worker secret is not configured.")
  if not secrets.compare_digest((supplied_secret or "").encode(), settings.worker_secret.encode()):
    raise WorkerAuthorizationError("Invalid worker secret.")


def claim_token(settings: Settings) -> str:
  """Return a locked_by value naming this worker and unique to this invocation."""
  return f"{settings.worker_id}#{uuid.uuid4().hex[:12]}"


def _job_scope_seed(job: JobRecord) -> dict[str, Any]:
  seed: dict[str, Any] = {"job_id": job.id, "job_type": job.job_type, **job.correlation_ids()}
  # Carry the request correlation of the HTTP call that triggered this run.
  parent = get_context()
  if parent is not None:
    seed.update({"request_id": parent.request_id, "route": parent.route, "method": parent.method, "trace_id": parent.trace_id})
  return seed


async def run_worker(
  job_id: str | None,
  supplied_secret: str | None,
  *,
  settings: Settings,
  jobs_repo: JobsRepository,
  registry: JobHandlerRegistry,
  publisher: TaskPublisher,
) -> WorkerOutcome:
  """Run one execution cycle for job_id.

  Raises WorkerAuthorizationError and WorkerBadRequestError before touching the
  store; store and publish failures propagate to the caller.
  """
  verify_worker_secret(supplied_secret, settings)

  normalized_job_id = (job_id or "").strip()
  if not normalized_job_id:
    raise WorkerBadRequestError("Missing jobId")

  patch_context(job_id=normalized_job_id)
  locked_by = claim_token(settings)
  job = await jobs_repo.claim_job(normalized_job_id, worker_id=locked_by, lease_seconds=settings.job_lease_seconds)

  # Already running, finished, cancelled or unknown: another delivery got here first.
  if job is None:
    log_event(logger, "info", "ai_jobs.worker.skipped", status_code=200)
    return WorkerOutcome(status_code=200, body={"ok": True, "skipped": True})

  with execution_context(_job_scope_seed(job)):
    log_event(logger, "info", "ai_jobs.worker.claimed", attempts=job.attempts, max_attempts=job.max_attempts, locked_by=locked_by)

    try:
      result = await dispatch_job(job, registry)
    except Exception as exc:  # noqa: BLE001
      outcome = await apply_failure_policy(job, exc, locked_by=locked_by, jobs_repo=jobs_repo, publisher=publisher, worker_url=settings.worker_url, worker_secret=settings.worker_secret)
      return WorkerOutcome(status_code=outcome.http_status, body=outcome.to_body())

    updated = await jobs_repo.mark_done(job.id, locked_by=locked_by, result=result)
    if updated is None:
      raise ClaimLostError(f"Job {job.id} is no longer held by {locked_by}; result not recorded.")

    log_event(logger, "success", "ai_jobs.worker.done", status_code=200)
    return WorkerOutcome(status_code=200, body={"ok": True, "jobId": job.id, "status": "done"})
