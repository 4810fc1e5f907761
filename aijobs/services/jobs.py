import logging
from dataclasses import dataclass, field
from typing import Any

from aijobs.config import Settings
from aijobs.jobs.models import JOB_STATUSES, JobRecord
from aijobs.services.tasks.interface import TaskPublisher
from aijobs.storage.jobs_repo import JobsRepository
from aijobs.telemetry.context import patch_context
from aijobs.telemetry.events import log_timer
from aijobs.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_DEFAULT_LIST_LIMIT = 50
_MAX_LIST_LIMIT = 200


class JobInputError(ValueError):
  """Raised when a producer request cannot become a queued job."""


@dataclass(frozen=True)
class EnqueueJobInput:
  """Producer request for one new job."""

  user_id: str
  job_type: str
  payload: dict[str, Any] = field(default_factory=dict)
  session_id: str | None = None
  chapter_id: str | None = None
  adventure_id: str | None = None
  chapter_quest_id: str | None = None
  priority: int | None = None
  max_attempts: int | None = None


def clamp_list_limit(limit: int | None) -> int:
  if limit is None:
    return _DEFAULT_LIST_LIMIT
  return max(1, min(_MAX_LIST_LIMIT, int(limit)))


async def enqueue_job(request: EnqueueJobInput, *, settings: Settings, jobs_repo: JobsRepository, publisher: TaskPublisher, declared_job_types: frozenset[str]) -> JobRecord:
  """Insert a queued job and ask the scheduler bridge for its first run."""
  user_id = (request.user_id or "").strip()
  if not user_id:
    raise JobInputError("Missing user_id")
  if request.job_type not in declared_job_types:
    raise JobInputError(f"Unknown job_type: {request.job_type}")
  max_attempts = request.max_attempts if request.max_attempts is not None else settings.default_max_attempts
  if max_attempts < 1:
    raise JobInputError("max_attempts must be at least 1")

  patch_context(user_id=user_id, session_id=request.session_id, chapter_id=request.chapter_id, adventure_id=request.adventure_id, chapter_quest_id=request.chapter_quest_id)

  record = JobRecord(
    id=generate_job_id(),
    job_type=request.job_type,
    status="queued",
    user_id=user_id,
    session_id=request.session_id,
    chapter_id=request.chapter_id,
    adventure_id=request.adventure_id,
    chapter_quest_id=request.chapter_quest_id,
    payload=dict(request.payload or {}),
    priority=request.priority if request.priority is not None else settings.default_priority,
    attempts=0,
    max_attempts=max_attempts,
  )

  with log_timer(logger, "ai_jobs.enqueue.insert", job_type=record.job_type) as timer:
    created = await jobs_repo.create_job(record)
    timer.end_success("ai_jobs.enqueue.insert.ok", status_code=201, job_id=created.id)

  patch_context(job_id=created.id, job_type=created.job_type)

  with log_timer(logger, "ai_jobs.enqueue.publish", worker_url=settings.worker_url) as timer:
    # The first run dedups on the bare job id; retries use <id>:retry:<n>.
    await publisher.publish(url=settings.worker_url, deduplication_id=created.id, body={"jobId": created.id, "workerSecret": settings.worker_secret})
    timer.end_success("ai_jobs.enqueue.publish.ok", status_code=202, job_id=created.id)

  return created


async def list_jobs(jobs_repo: JobsRepository, *, user_id: str, status: str | None = None, job_type: str | None = None, limit: int | None = None) -> list[JobRecord]:
  """Return a user's jobs, newest first, with optional status and type filters."""
  if status and status not in JOB_STATUSES:
    raise JobInputError(f"Unknown status: {status}")
  patch_context(user_id=user_id)
  return await jobs_repo.list_jobs(user_id=user_id, status=status or None, job_type=job_type or None, limit=clamp_list_limit(limit))
