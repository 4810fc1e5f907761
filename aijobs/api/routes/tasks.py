from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status

from aijobs.api.deps import get_jobs_repo, get_publisher, require_internal_secret
from aijobs.config import Settings, get_settings
from aijobs.jobs.leases import recover_expired_leases
from aijobs.services.tasks.interface import TaskPublisher
from aijobs.storage.jobs_repo import JobsRepository

router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(require_internal_secret)])
logger = logging.getLogger(__name__)


@router.post("/recover-leases", status_code=status.HTTP_200_OK)
async def recover_leases_task(
  settings: Annotated[Settings, Depends(get_settings)],
  publisher: Annotated[TaskPublisher, Depends(get_publisher)],
  jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)],
  limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> dict[str, Any]:
  """Cron target: requeue or fail jobs whose worker died while holding the claim."""
  if settings.job_lease_seconds is None:
    return {"ok": True, "disabled": True}
  report = await recover_expired_leases(settings=settings, jobs_repo=jobs_repo, publisher=publisher, limit=limit)
  return report.to_body()
