"""Postgres-backed repository for AI jobs using SQLAlchemy."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import Update, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aijobs.core.database import get_session_factory
from aijobs.jobs.models import JobRecord, can_transition
from aijobs.schema.jobs import AiJob
from aijobs.storage.jobs_repo import JobsRepository

# How long a lease-recovery sweep holds a taken-over row while it writes the outcome.
_RECOVERY_HOLD_SECONDS = 60


def _utcnow() -> datetime:
  return datetime.now(UTC)


def _transition(job_id: str, source: str, target: str) -> Update:
  """Build the conditional UPDATE for one state machine edge, guarded by the row's current status."""
  if not can_transition(source, target):
    raise ValueError(f"Illegal job transition {source} -> {target}")

  return update(AiJob).where(AiJob.id == job_id, AiJob.status == source).values(status=target).returning(AiJob).execution_options(synchronize_session=False)


class PostgresJobsRepository(JobsRepository):
  """Persist ai_jobs rows to Postgres using SQLAlchemy."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> JobRecord:
    async with self._session_factory() as session:
      now = record.created_at or _utcnow()
      row = AiJob(
        id=record.id,
        user_id=record.user_id,
        session_id=record.session_id,
        chapter_id=record.chapter_id,
        adventure_id=record.adventure_id,
        chapter_quest_id=record.chapter_quest_id,
        job_type=record.job_type,
        payload=record.payload or {},
        status="queued",
        priority=record.priority,
        attempts=0,
        max_attempts=record.max_attempts,
        created_at=now,
        updated_at=now,
      )
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(AiJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def claim_job(self, job_id: str, *, worker_id: str, lease_seconds: int | None, now: datetime | None = None) -> JobRecord | None:
    now = now or _utcnow()
    lease_until = now + timedelta(seconds=lease_seconds) if lease_seconds else None
    # The WHERE status = 'queued' guard is the whole concurrency control: one UPDATE wins, the rest match nothing.
    stmt = _transition(job_id, "queued", "running").values(locked_at=now, locked_by=worker_id, lease_until=lease_until, started_at=now, updated_at=now)
    return await self._execute_update(stmt)

  async def mark_done(self, job_id: str, *, locked_by: str, result: dict[str, Any], now: datetime | None = None) -> JobRecord | None:
    now = now or _utcnow()
    stmt = (
      _transition(job_id, "running", "done")
      .where(AiJob.locked_by == locked_by)
      .values(result=result, error_message=None, finished_at=now, locked_at=None, locked_by=None, lease_until=None, updated_at=now)
    )
    return await self._execute_update(stmt)

  async def requeue_job(self, job_id: str, *, locked_by: str, attempts: int, error_message: str, now: datetime | None = None) -> JobRecord | None:
    now = now or _utcnow()
    # started_at keeps the first attempt's timestamp.
    stmt = (
      _transition(job_id, "running", "queued")
      .where(AiJob.locked_by == locked_by)
      .values(attempts=attempts, error_message=error_message, locked_at=None, locked_by=None, lease_until=None, updated_at=now)
    )
    return await self._execute_update(stmt)

  async def mark_failed(self, job_id: str, *, locked_by: str, attempts: int, error_message: str, now: datetime | None = None) -> JobRecord | None:
    now = now or _utcnow()
    stmt = (
      _transition(job_id, "running", "error")
      .where(AiJob.locked_by == locked_by)
      .values(attempts=attempts, error_message=error_message, finished_at=now, locked_at=None, locked_by=None, lease_until=None, updated_at=now)
    )
    return await self._execute_update(stmt)

  async def list_jobs(self, *, user_id: str, status: str | None = None, job_type: str | None = None, limit: int = 50) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(AiJob).where(AiJob.user_id == user_id)
      if status:
        stmt = stmt.where(AiJob.status == status)
      if job_type:
        stmt = stmt.where(AiJob.job_type == job_type)
      stmt = stmt.order_by(AiJob.created_at.desc(), AiJob.id.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def find_expired_leases(self, *, now: datetime, limit: int = 50) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(AiJob).where(AiJob.status == "running", AiJob.lease_until.is_not(None), AiJob.lease_until < now).order_by(AiJob.lease_until.asc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def take_over_expired_lease(self, job_id: str, *, recovery_id: str, now: datetime) -> JobRecord | None:
    stmt = (
      update(AiJob)
      .where(AiJob.id == job_id, AiJob.status == "running", AiJob.lease_until.is_not(None), AiJob.lease_until < now)
      .values(locked_at=now, locked_by=recovery_id, lease_until=now + timedelta(seconds=_RECOVERY_HOLD_SECONDS), updated_at=now)
      .returning(AiJob)
      .execution_options(synchronize_session=False)
    )
    return await self._execute_update(stmt)

  async def _execute_update(self, stmt: Any) -> JobRecord | None:
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      record = self._model_to_record(row) if row is not None else None
      await session.commit()
      return record

  def _model_to_record(self, row: AiJob) -> JobRecord:
    return JobRecord(
      id=row.id,
      job_type=row.job_type,
      status=row.status,
      user_id=row.user_id,
      session_id=row.session_id,
      chapter_id=row.chapter_id,
      adventure_id=row.adventure_id,
      chapter_quest_id=row.chapter_quest_id,
      payload=dict(row.payload or {}),
      priority=int(row.priority),
      attempts=int(row.attempts),
      max_attempts=int(row.max_attempts),
      locked_at=row.locked_at,
      locked_by=row.locked_by,
      lease_until=row.lease_until,
      started_at=row.started_at,
      finished_at=row.finished_at,
      result=row.result,
      error_message=row.error_message,
      created_at=row.created_at,
      updated_at=row.updated_at,
    )
