from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from aijobs.api.deps import get_job_registry, get_jobs_repo, get_publisher
from aijobs.api.models import WorkerRunRequest
from aijobs.config import Settings, get_settings
from aijobs.jobs.dispatch import JobHandlerRegistry
from aijobs.jobs.errors import WorkerAuthorizationError, WorkerBadRequestError
from aijobs.jobs.worker import run_worker
from aijobs.services.tasks.interface import TaskPublisher
from aijobs.storage.jobs_repo import JobsRepository

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/run")
async def run_worker_endpoint(
  request: Request,
  settings: Annotated[Settings, Depends(get_settings)],
  registry: Annotated[JobHandlerRegistry, Depends(get_job_registry)],
  publisher: Annotated[TaskPublisher, Depends(get_publisher)],
  jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)],
) -> JSONResponse:
  """Entry point the scheduler bridge pushes to; runs one execution cycle for a job."""
  try:
    raw = await request.json()
  except ValueError:
    raw = None

  if not isinstance(raw, dict):
    logger.warning("Rejected worker call with an unreadable body")
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})

  try:
    task = WorkerRunRequest.model_validate(raw)
  except ValidationError:
    logger.warning("Rejected worker call with mistyped fields")
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})

  try:
    outcome = await run_worker(task.job_id, task.worker_secret, settings=settings, jobs_repo=jobs_repo, registry=registry, publisher=publisher)
  except WorkerAuthorizationError:
    logger.warning("Unauthorized access attempt to the worker entry point")
    return JSONResponse(status_code=403, content={"error": "Forbidden"})
  except WorkerBadRequestError as exc:
    return JSONResponse(status_code=400, content={"error": str(exc)})

  return JSONResponse(status_code=outcome.status_code, content=outcome.body)
