"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

_TASK_PROVIDERS = {"local-http", "qstash", "gcp"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the AI jobs service."""

  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  persist_system_logs: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  worker_secret: str | None
  base_url: str | None
  worker_id: str
  job_lease_seconds: int | None
  default_max_attempts: int
  default_priority: int
  task_service_provider: str
  qstash_url: str
  qstash_token: str | None
  cloud_tasks_queue_path: str | None
  cloud_run_invoker_service_account: str | None
  briefing_service_url: str | None
  briefing_timeout_seconds: int

  @property
  def worker_url(self) -> str:
    """Absolute URL of the worker entry point used for every scheduler push."""
    if not self.base_url:
      raise RuntimeError("AIJOBS_BASE_URL must be set to publish worker tasks.")
    return f"{self.base_url.rstrip('/')}/api/ai/worker/run"


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _parse_positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _parse_lease_seconds(raw: str | None) -> int | None:
  """Parse the claim lease; zero disables lease recovery entirely."""
  if raw is None or raw.strip() == "":
    return 900

  value = int(raw)
  if value < 0:
    raise ValueError("AIJOBS_JOB_LEASE_SECONDS must be zero or a positive integer.")

  if value == 0:
    return None

  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  # Toggle verbose SQL echo and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("AIJOBS_DEBUG"))

  log_max_bytes = _parse_positive_int("AIJOBS_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("AIJOBS_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("AIJOBS_LOG_BACKUP_COUNT must be zero or a positive integer.")

  default_max_attempts = _parse_positive_int("AIJOBS_DEFAULT_MAX_ATTEMPTS", "3")
  default_priority = int(os.getenv("AIJOBS_DEFAULT_PRIORITY", "50"))

  task_service_provider = os.getenv("AIJOBS_TASK_SERVICE_PROVIDER", "local-http").strip().lower()
  if task_service_provider not in _TASK_PROVIDERS:
    raise ValueError(f"AIJOBS_TASK_SERVICE_PROVIDER must be one of {sorted(_TASK_PROVIDERS)}.")

  qstash_token = _optional_str(os.getenv("AIJOBS_QSTASH_TOKEN"))
  if task_service_provider == "qstash" and not qstash_token:
    raise ValueError("AIJOBS_QSTASH_TOKEN must be set when the qstash task provider is selected.")

  cloud_tasks_queue_path = _optional_str(os.getenv("AIJOBS_CLOUD_TASKS_QUEUE_PATH"))
  if task_service_provider == "gcp" and not cloud_tasks_queue_path:
    raise ValueError("AIJOBS_CLOUD_TASKS_QUEUE_PATH must be set when the gcp task provider is selected.")

  # Identify this deployment in locked_by so operators can tell which worker holds a claim.
  base_url = _optional_str(os.getenv("AIJOBS_BASE_URL"))
  worker_id = _optional_str(os.getenv("AIJOBS_WORKER_ID")) or f"worker:{base_url or 'local'}"

  return Settings(
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("AIJOBS_LOG_HTTP_4XX")),
    persist_system_logs=_parse_bool(os.getenv("AIJOBS_PERSIST_SYSTEM_LOGS", "true")),
    pg_dsn=os.getenv("AIJOBS_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_parse_positive_int("AIJOBS_PG_CONNECT_TIMEOUT", "5"),
    worker_secret=_optional_str(os.getenv("AIJOBS_WORKER_SECRET")),
    base_url=base_url,
    worker_id=worker_id,
    job_lease_seconds=_parse_lease_seconds(os.getenv("AIJOBS_JOB_LEASE_SECONDS")),
    default_max_attempts=default_max_attempts,
    default_priority=default_priority,
    task_service_provider=task_service_provider,
    qstash_url=(os.getenv("AIJOBS_QSTASH_URL") or "https://qstash.upstash.io").strip().rstrip("/"),
    qstash_token=qstash_token,
    cloud_tasks_queue_path=cloud_tasks_queue_path,
    cloud_run_invoker_service_account=_optional_str(os.getenv("AIJOBS_CLOUD_RUN_INVOKER_SERVICE_ACCOUNT")),
    briefing_service_url=_optional_str(os.getenv("AIJOBS_BRIEFING_SERVICE_URL")),
    briefing_timeout_seconds=_parse_positive_int("AIJOBS_BRIEFING_TIMEOUT_SECONDS", "120"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring worker or scheduler configuration."""
  # Keep database configuration isolated so migrations and offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("AIJOBS_DEBUG"))
  pg_connect_timeout = _parse_positive_int("AIJOBS_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for managed hosting providers.
  pg_dsn = os.getenv("AIJOBS_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
