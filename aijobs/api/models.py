from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from aijobs.jobs.models import JobRecord, JobStatus


class WorkerRunRequest(BaseModel):
  """Body pushed by the scheduler bridge to the worker entry point."""

  job_id: StrictStr | None = Field(default=None, alias="jobId")
  worker_secret: StrictStr | None = Field(default=None, alias="workerSecret")
  model_config = ConfigDict(populate_by_name=True)


class EnqueueJobRequest(BaseModel):
  """Producer request to create and schedule one job."""

  user_id: StrictStr = Field(min_length=1, description="Owner of the job.")
  job_type: StrictStr = Field(min_length=1, description="Tag selecting the handler.", examples=["adventure_briefing"])
  payload: dict[str, Any] = Field(default_factory=dict, description="Opaque document interpreted by the handler.")
  session_id: StrictStr | None = None
  chapter_id: StrictStr | None = None
  adventure_id: StrictStr | None = None
  chapter_quest_id: StrictStr | None = None
  priority: int | None = Field(default=None, description="Stored for reporting; not used for scheduling.")
  max_attempts: int | None = Field(default=None, ge=1, le=20)
  model_config = ConfigDict(extra="forbid")


class JobResponse(BaseModel):
  """Read model of one ai_jobs row."""

  id: str
  user_id: str | None
  session_id: str | None
  chapter_id: str | None
  adventure_id: str | None
  chapter_quest_id: str | None
  job_type: str
  payload: dict[str, Any]
  status: JobStatus
  priority: int
  attempts: int
  max_attempts: int
  locked_at: datetime | None
  locked_by: str | None
  started_at: datetime | None
  finished_at: datetime | None
  result: dict[str, Any] | None
  error_message: str | None
  created_at: datetime | None
  updated_at: datetime | None

  @classmethod
  def from_record(cls, record: JobRecord) -> JobResponse:
    return cls(
      id=record.id,
      user_id=record.user_id,
      session_id=record.session_id,
      chapter_id=record.chapter_id,
      adventure_id=record.adventure_id,
      chapter_quest_id=record.chapter_quest_id,
      job_type=record.job_type,
      payload=record.payload,
      status=record.status,
      priority=record.priority,
      attempts=record.attempts,
      max_attempts=record.max_attempts,
      locked_at=record.locked_at,
      locked_by=record.locked_by,
      started_at=record.started_at,
      finished_at=record.finished_at,
      result=record.result,
      error_message=record.error_message,
      created_at=record.created_at,
      updated_at=record.updated_at,
    )


class JobListResponse(BaseModel):
  items: list[JobResponse]
