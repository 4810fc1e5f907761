"""Structured event logging that inherits correlation fields from the execution context.

Every event goes to the standard logging tree. When a system log repository is
configured, the same event is also written to the system_logs table in a
background task; a failed insert is logged and never reaches the caller.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from aijobs.storage.system_logs_repo import SystemLogRecord, SystemLogRepository
from aijobs.telemetry.context import get_context

# "success" is logged at INFO with outcome=success so dashboards can split it out.
_LEVELS = {"debug": logging.DEBUG, "info": logging.INFO, "success": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}

# Row columns filled from the active scope unless the call site passes them explicitly.
_ROW_CONTEXT_FIELDS = (
  "request_id",
  "trace_id",
  "route",
  "method",
  "job_id",
  "job_type",
  "session_id",
  "user_id",
  "chapter_id",
  "adventure_id",
  "chapter_quest_id",
  "adventure_quest_id",
)

# Frames from these modules are skipped when looking for the caller.
_INTERNAL_MODULES = {__name__, "contextlib"}

persist_logger = logging.getLogger(__name__)

_system_log_repo: SystemLogRepository | None = None
_pending_writes: set[asyncio.Task[None]] = set()


def configure_system_log_persistence(repo: SystemLogRepository | None) -> None:
  """Route events to repo as well as to logging; None turns persistence off."""
  global _system_log_repo
  _system_log_repo = repo


async def flush_system_logs() -> None:
  """Wait for background inserts scheduled so far."""
  if _pending_writes:
    await asyncio.gather(*list(_pending_writes), return_exceptions=True)


def _format_metadata(metadata: dict[str, Any]) -> str:
  if not metadata:
    return "{}"
  return json.dumps(metadata, default=str, ensure_ascii=True, sort_keys=True)


def _json_safe(metadata: dict[str, Any]) -> dict[str, Any]:
  return json.loads(json.dumps(metadata, default=str))


def _caller_location(error: BaseException | None) -> tuple[str | None, int | None, str | None]:
  """Return file, line and function of the raising frame, or of the first frame outside this module."""
  if error is not None and error.__traceback__ is not None:
    frame_summary = traceback.extract_tb(error.__traceback__)[-1]
    return frame_summary.filename, frame_summary.lineno, frame_summary.name

  for frame, lineno in traceback.walk_stack(inspect.currentframe()):
    if frame.f_globals.get("__name__") in _INTERNAL_MODULES:
      continue
    return frame.f_code.co_filename, lineno, frame.f_code.co_name

  return None, None, None


def _build_record(logger: logging.Logger, level: str, event: str, status_code: int | None, duration_ms: int | None, error: BaseException | None, source: str | None, metadata: dict[str, Any]) -> SystemLogRecord:
  context = get_context()
  ids: dict[str, Any] = {name: getattr(context, name, None) if context is not None else None for name in _ROW_CONTEXT_FIELDS}
  for name in _ROW_CONTEXT_FIELDS:
    if metadata.get(name) is not None:
      ids[name] = str(metadata[name])

  file, line, function_name = _caller_location(error)
  stack = "".join(traceback.format_exception(error)) if error is not None and error.__traceback__ is not None else None

  return SystemLogRecord(
    level=level,
    message=event,
    status_code=status_code,
    duration_ms=duration_ms,
    source=source or logger.name,
    file=file,
    line=line,
    function_name=function_name,
    error_name=type(error).__name__ if error is not None else None,
    error_message=str(error) if error is not None else None,
    stack=stack,
    metadata=_json_safe(metadata),
    **ids,
  )


async def _insert(repo: SystemLogRepository, record: SystemLogRecord) -> None:
  try:
    await repo.insert_record(record)
  except Exception as exc:  # noqa: BLE001
    persist_logger.error("system_logs insert failed for %s: %s", record.message, exc)


def _persist(record: SystemLogRecord) -> None:
  repo = _system_log_repo
  if repo is None:
    return

  try:
    loop = asyncio.get_running_loop()
  except RuntimeError:
    # Sync callers outside the server loop only reach the logging handlers.
    return

  task = loop.create_task(_insert(repo, record))
  _pending_writes.add(task)
  task.add_done_callback(_pending_writes.discard)


def log_event(
  logger: logging.Logger,
  level: str,
  event: str,
  *,
  status_code: int | None = None,
  duration_ms: int | None = None,
  error: BaseException | None = None,
  source: str | None = None,
  **metadata: Any,
) -> None:
  """Emit one dotted event name (e.g. ai_jobs.claim.ok) with status, timing and metadata."""
  if level not in _LEVELS:
    raise ValueError(f"Unsupported log level: {level}")

  # Fall back to the time elapsed since the invocation scope started.
  if duration_ms is None:
    context = get_context()
    duration_ms = context.elapsed_ms() if context is not None else None

  extra: dict[str, Any] = {"event": event, "outcome": level, "status_code": status_code, "duration_ms": duration_ms}
  if error is not None:
    extra["error_name"] = type(error).__name__
    extra["error_message"] = str(error)

  logger.log(
    _LEVELS[level],
    "%s outcome=%s status_code=%s duration_ms=%s error=%s metadata=%s",
    event,
    level,
    status_code if status_code is not None else "-",
    duration_ms if duration_ms is not None else "-",
    f"{type(error).__name__}: {error}" if error is not None else "-",
    _format_metadata(metadata),
    exc_info=error if level == "error" and error is not None else None,
    extra=extra,
  )

  if _system_log_repo is not None:
    _persist(_build_record(logger, level, event, status_code, duration_ms, error, source, metadata))


@dataclass
class EventTimer:
  """Measure one operation and log its end state once."""

  logger: logging.Logger
  label: str
  metadata: dict[str, Any] = field(default_factory=dict)
  started: float = field(default_factory=time.perf_counter)

  def elapsed_ms(self) -> int:
    return max(0, int((time.perf_counter() - self.started) * 1000))

  def end_success(self, event: str | None = None, *, status_code: int | None = None, **metadata: Any) -> None:
    log_event(self.logger, "success", event or self.label, status_code=status_code, duration_ms=self.elapsed_ms(), **{**self.metadata, **metadata})

  def end_error(self, event: str, error: BaseException | None = None, *, status_code: int | None = None, **metadata: Any) -> None:
    log_event(self.logger, "error", event, status_code=status_code, duration_ms=self.elapsed_ms(), error=error, **{**self.metadata, **metadata})


@contextmanager
def log_timer(logger: logging.Logger, label: str, **metadata: Any) -> Iterator[EventTimer]:
  """Yield a timer; log an error event automatically if the block raises."""
  timer = EventTimer(logger=logger, label=label, metadata=metadata)
  try:
    yield timer
  except Exception as exc:
    timer.end_error(f"{label}.fatal", exc)
    raise
