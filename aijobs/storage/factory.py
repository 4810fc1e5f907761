from aijobs.config import Settings
from aijobs.storage.jobs_repo import JobsRepository
from aijobs.storage.postgres_jobs_repo import PostgresJobsRepository


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""

  # Enforce Postgres-backed storage for jobs.

  if not settings.pg_dsn:
    raise ValueError("AIJOBS_PG_DSN must be set to enable Postgres persistence.")

  return PostgresJobsRepository()
