import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from aijobs.core import database
from aijobs.core.logging import _initialize_logging
from aijobs.jobs.handlers import build_default_registry
from aijobs.services.tasks.factory import get_task_publisher
from aijobs.storage.postgres_system_logs_repo import PostgresSystemLogRepository
from aijobs.telemetry.events import configure_system_log_persistence, flush_system_logs


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, validate the handler registry and bind the scheduler bridge."""
  from aijobs.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("aijobs.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:
    # Logging falls back to the interpreter defaults; the service can still serve.
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  # A registry that misses a declared job type must stop the deploy, not fail jobs at runtime.
  app.state.job_registry = build_default_registry(settings)
  logger.info("Job handlers registered: %s", ", ".join(sorted(app.state.job_registry.job_types)))

  app.state.task_publisher = get_task_publisher(settings)
  logger.info("Task publisher ready provider=%s database=%s lease_seconds=%s", settings.task_service_provider, _redact_dsn(settings.pg_dsn), settings.job_lease_seconds)

  # Events still reach the log handlers when the table is unavailable.
  if settings.persist_system_logs and settings.pg_dsn:
    configure_system_log_persistence(PostgresSystemLogRepository())
    logger.info("System log persistence enabled.")

  yield

  configure_system_log_persistence(None)
  await flush_system_logs()

  # Only dispose an engine a request actually created.
  if database.engine is not None:
    await database.engine.dispose()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
