import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from aijobs.api.deps import get_job_registry, get_jobs_repo, get_publisher, require_internal_secret
from aijobs.api.models import EnqueueJobRequest, JobListResponse, JobResponse
from aijobs.config import Settings, get_settings
from aijobs.jobs.dispatch import JobHandlerRegistry
from aijobs.services import jobs as job_service
from aijobs.services.tasks.interface import TaskPublisher
from aijobs.storage.jobs_repo import JobsRepository

router = APIRouter(dependencies=[Depends(require_internal_secret)])
logger = logging.getLogger("aijobs.api.routes.jobs")


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def enqueue_job(
  request: EnqueueJobRequest,
  settings: Annotated[Settings, Depends(get_settings)],
  registry: Annotated[JobHandlerRegistry, Depends(get_job_registry)],
  publisher: Annotated[TaskPublisher, Depends(get_publisher)],
  jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)],
) -> dict[str, str]:
  """Insert a queued job and schedule its first run."""
  enqueue_input = job_service.EnqueueJobInput(**request.model_dump())
  try:
    created = await job_service.enqueue_job(enqueue_input, settings=settings, jobs_repo=jobs_repo, publisher=publisher, declared_job_types=registry.job_types)
  except job_service.JobInputError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
  return {"jobId": created.id}


@router.get("", response_model=JobListResponse)
async def list_jobs(
  jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)],
  user_id: Annotated[str, Query(min_length=1)],
  job_status: Annotated[str | None, Query(alias="status")] = None,
  job_type: Annotated[str | None, Query()] = None,
  limit: Annotated[int | None, Query()] = None,
) -> JobListResponse:
  """List a user's jobs, newest first."""
  try:
    records = await job_service.list_jobs(jobs_repo, user_id=user_id, status=(job_status or "").strip() or None, job_type=(job_type or "").strip() or None, limit=limit)
  except job_service.JobInputError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
  return JobListResponse(items=[JobResponse.from_record(record) for record in records])


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)]) -> JobResponse:
  """Fetch one job row."""
  record = await jobs_repo.get_job(job_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
  return JobResponse.from_record(record)
