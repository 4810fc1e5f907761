"""Recovery for jobs whose worker invocation died while holding the claim."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from aijobs.config import Settings
from aijobs.jobs.retry import RetryOutcome, apply_failure_policy
from aijobs.services.tasks.interface import TaskPublisher
from aijobs.storage.jobs_repo import JobsRepository
from aijobs.telemetry.context import execution_context

logger = logging.getLogger(__name__)

LEASE_EXPIRED_MESSAGE = "Lease expired while running"


class LeaseExpiredError(RuntimeError):
  """Failure recorded for a cycle abandoned by a crashed worker."""


@dataclass
class LeaseRecoveryReport:
  """Summary of one recovery sweep."""

  requeued: list[str] = field(default_factory=list)
  failed: list[str] = field(default_factory=list)
  skipped: list[str] = field(default_factory=list)

  def to_body(self) -> dict[str, object]:
    return {"ok": True, "requeued": self.requeued, "failed": self.failed, "skipped": self.skipped}


async def recover_expired_leases(*, settings: Settings, jobs_repo: JobsRepository, publisher: TaskPublisher, now: datetime | None = None, limit: int = 50) -> LeaseRecoveryReport:
  """Treat every expired running claim as one failed cycle and run it through the retry policy."""
  now = now or datetime.now(UTC)
  report = LeaseRecoveryReport()
  recovery_id = f"lease-recovery:{settings.worker_id}#{uuid.uuid4().hex[:12]}"

  for candidate in await jobs_repo.find_expired_leases(now=now, limit=limit):
    # Another sweep (or the original worker finishing late) may win the row first.
    job = await jobs_repo.take_over_expired_lease(candidate.id, recovery_id=recovery_id, now=now)
    if job is None:
      report.skipped.append(candidate.id)
      continue

    with execution_context({"job_id": job.id, "job_type": job.job_type, **job.correlation_ids()}):
      logger.warning("Recovering job %s abandoned by %s", job.id, candidate.locked_by)
      outcome: RetryOutcome = await apply_failure_policy(
        job, LeaseExpiredError(LEASE_EXPIRED_MESSAGE), locked_by=recovery_id, jobs_repo=jobs_repo, publisher=publisher, worker_url=settings.worker_url, worker_secret=settings.worker_secret
      )

    if outcome.retried:
      report.requeued.append(job.id)
    else:
      report.failed.append(job.id)

  if report.requeued or report.failed:
    logger.info("Lease recovery requeued=%d failed=%d skipped=%d", len(report.requeued), len(report.failed), len(report.skipped))
  return report
