"""Shared FastAPI dependencies for the job engine collaborators."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from aijobs.config import Settings, get_settings
from aijobs.jobs.dispatch import JobHandlerRegistry
from aijobs.jobs.handlers import build_default_registry
from aijobs.services.tasks.factory import get_task_publisher
from aijobs.services.tasks.interface import TaskPublisher
from aijobs.storage.factory import _get_jobs_repo
from aijobs.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


def get_jobs_repo(settings: Annotated[Settings, Depends(get_settings)]) -> JobsRepository:
  """Resolve the jobs repository for one request."""
  return _get_jobs_repo(settings)


def get_job_registry(request: Request, settings: Annotated[Settings, Depends(get_settings)]) -> JobHandlerRegistry:
  """Return the registry validated at startup, building it if the lifespan did not run."""
  registry = getattr(request.app.state, "job_registry", None)
  if registry is None:
    registry = build_default_registry(settings)
    request.app.state.job_registry = registry
  return registry


def get_publisher(request: Request, settings: Annotated[Settings, Depends(get_settings)]) -> TaskPublisher:
  """Return the process-wide scheduler bridge."""
  publisher = getattr(request.app.state, "task_publisher", None)
  if publisher is None:
    publisher = get_task_publisher(settings)
    request.app.state.task_publisher = publisher
  return publisher


def require_internal_secret(settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None), x_aijobs_worker_secret: str | None = Header(default=None)) -> None:
  """Guard internal producer and maintenance endpoints with the shared worker secret."""
  # Secure-by-default: without a configured secret nothing internal is reachable.
  if not settings.worker_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
  shared_secret_valid = secrets.compare_digest((x_aijobs_worker_secret or "").encode(), settings.worker_secret.encode())
  bearer_valid = secrets.compare_digest((authorization or "").encode(), f"Bearer {settings.worker_secret}".encode())
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to an internal job endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
