"""Storage interfaces for persisted system log events."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class SystemLogRecord:
  """One structured event with the correlation ids of the scope it was emitted in."""

  level: str
  message: str
  request_id: str | None = None
  trace_id: str | None = None
  route: str | None = None
  method: str | None = None
  status_code: int | None = None
  duration_ms: int | None = None
  job_id: str | None = None
  job_type: str | None = None
  session_id: str | None = None
  user_id: str | None = None
  chapter_id: str | None = None
  adventure_id: str | None = None
  chapter_quest_id: str | None = None
  adventure_quest_id: str | None = None
  source: str | None = None
  file: str | None = None
  line: int | None = None
  function_name: str | None = None
  error_name: str | None = None
  error_message: str | None = None
  stack: str | None = None
  metadata: dict[str, Any] = field(default_factory=dict)


class SystemLogRepository(Protocol):
  """Repository contract for system log persistence."""

  async def insert_record(self, record: SystemLogRecord) -> int:
    """Insert one log row and return its id."""
