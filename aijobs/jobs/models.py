"""Domain models for asynchronous AI generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

JobStatus = Literal["queued", "running", "done", "error", "cancelled"]

JOB_STATUSES: frozenset[str] = frozenset({"queued", "running", "done", "error", "cancelled"})

# queued -> running is the claim; every other edge starts from running.
JOB_TRANSITIONS: dict[str, frozenset[str]] = {
  "queued": frozenset({"running"}),
  "running": frozenset({"done", "queued", "error"}),
  "done": frozenset(),
  "error": frozenset(),
  "cancelled": frozenset(),
}

# Correlation columns copied into the execution context when a job is claimed.
CORRELATION_FIELDS: tuple[str, ...] = ("user_id", "session_id", "chapter_id", "adventure_id", "chapter_quest_id")


def can_transition(current: str, target: str) -> bool:
  """Return True when the state machine allows moving from current to target."""
  return target in JOB_TRANSITIONS.get(current, frozenset())


@dataclass
class JobRecord:
  """Represents one row of the ai_jobs table."""

  id: str
  job_type: str
  status: JobStatus
  user_id: str | None = None
  session_id: str | None = None
  chapter_id: str | None = None
  adventure_id: str | None = None
  chapter_quest_id: str | None = None
  payload: dict[str, Any] = field(default_factory=dict)
  priority: int = 50
  attempts: int = 0
  max_attempts: int = 3
  locked_at: datetime | None = None
  locked_by: str | None = None
  lease_until: datetime | None = None
  started_at: datetime | None = None
  finished_at: datetime | None = None
  result: dict[str, Any] | None = None
  error_message: str | None = None
  created_at: datetime | None = None
  updated_at: datetime | None = None

  def correlation_ids(self) -> dict[str, str | None]:
    """Return the opaque foreign references the engine forwards to handlers and logs."""
    return {name: getattr(self, name) for name in CORRELATION_FIELDS}
