"""Test configuration: environment defaults and shared fixtures."""

from __future__ import annotations

import os
from collections.abc import Callable

# Ensure required settings are available before importing the app.
os.environ.setdefault("AIJOBS_WORKER_SECRET", "test-worker-secret")
os.environ.setdefault("AIJOBS_BASE_URL", "http://test")
os.environ.setdefault("AIJOBS_TASK_SERVICE_PROVIDER", "local-http")

import pytest  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

import aijobs.schema.jobs  # noqa: E402, F401
import aijobs.schema.system_logs  # noqa: E402, F401
from aijobs.config import Settings  # noqa: E402
from aijobs.core.database import Base  # noqa: E402
from tests.support import InMemoryJobsRepo, RecordingPublisher, build_settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
  return build_settings()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
  return build_settings


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepo:
  return InMemoryJobsRepo()


@pytest.fixture
def publisher() -> RecordingPublisher:
  return RecordingPublisher()


@pytest.fixture
async def session_factory(tmp_path):
  """File-backed SQLite so concurrent sessions really contend for the same rows."""
  engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}", connect_args={"timeout": 15})

  # Take the write lock up front; deferred transactions can deadlock on lock upgrade.
  @event.listens_for(engine.sync_engine, "connect")
  def _disable_driver_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None

  @event.listens_for(engine.sync_engine, "begin")
  def _begin_immediate(connection):
    connection.exec_driver_sql("BEGIN IMMEDIATE")

  async with engine.begin() as connection:
    await connection.run_sync(Base.metadata.create_all)
  yield async_sessionmaker(bind=engine, expire_on_commit=False)
  await engine.dispose()


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"
