"""Postgres-backed repository for system log events using SQLAlchemy."""

from __future__ import annotations

import logging
from dataclasses import asdict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aijobs.core.database import get_session_factory
from aijobs.schema.system_logs import SystemLog
from aijobs.storage.system_logs_repo import SystemLogRecord, SystemLogRepository

logger = logging.getLogger(__name__)


class PostgresSystemLogRepository(SystemLogRepository):
  """Persist system log rows into Postgres for later correlation by request and job id."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def insert_record(self, record: SystemLogRecord) -> int:
    """Insert a system log record."""
    values = asdict(record)
    metadata = values.pop("metadata")
    async with self._session_factory() as session:
      row = SystemLog(**values, metadata_json=metadata)
      session.add(row)
      await session.flush()
      row_id = row.id
      await session.commit()
      logger.debug("Inserted system log %s", row_id)
      return row_id
