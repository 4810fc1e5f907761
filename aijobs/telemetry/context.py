"""Execution context helpers for correlating log lines within one invocation."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, fields
from typing import Any, TypeVar

T = TypeVar("T")


@dataclass
class ExecutionContext:
  """Correlation metadata shared by every call of one request or job invocation."""

  request_id: str | None = None
  route: str | None = None
  method: str | None = None
  started_at_ms: int | None = None
  trace_id: str | None = None
  job_id: str | None = None
  job_type: str | None = None
  user_id: str | None = None
  session_id: str | None = None
  chapter_id: str | None = None
  adventure_id: str | None = None
  chapter_quest_id: str | None = None
  adventure_quest_id: str | None = None

  def as_dict(self) -> dict[str, Any]:
    return asdict(self)

  def elapsed_ms(self) -> int | None:
    if self.started_at_ms is None:
      return None
    return max(0, int(time.time() * 1000) - self.started_at_ms)


CONTEXT_FIELDS: tuple[str, ...] = tuple(item.name for item in fields(ExecutionContext))

_CURRENT_CONTEXT: ContextVar[ExecutionContext | None] = ContextVar("execution_context", default=None)


def _build_context(seed: dict[str, Any] | None) -> ExecutionContext:
  values = {key: value for key, value in (seed or {}).items() if key in CONTEXT_FIELDS and value is not None}
  values.setdefault("started_at_ms", int(time.time() * 1000))
  return ExecutionContext(**values)


def get_context() -> ExecutionContext | None:
  """Return the active execution context, or None outside any scope."""
  return _CURRENT_CONTEXT.get()


@contextmanager
def execution_context(seed: dict[str, Any] | None = None) -> Iterator[ExecutionContext]:
  """Open a fresh context scope seeded from seed and restore the previous one afterward."""
  # The ContextVar is task-local: tasks spawned inside the scope copy the reference,
  # concurrent invocations each get their own object.
  context = _build_context(seed)
  token = _CURRENT_CONTEXT.set(context)

  try:
    yield context

  finally:
    _CURRENT_CONTEXT.reset(token)


async def with_context(seed: dict[str, Any] | None, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
  """Await fn inside a freshly scoped context initialized from seed."""
  with execution_context(seed):
    return await fn(*args, **kwargs)


def patch_context(**patch: Any) -> None:
  """Merge non-None fields into the active scope; a no-op outside any scope."""
  context = _CURRENT_CONTEXT.get()
  if context is None:
    return

  unknown = set(patch) - set(CONTEXT_FIELDS)
  if unknown:
    raise TypeError(f"Unknown execution context field(s): {', '.join(sorted(unknown))}")

  for key, value in patch.items():
    if value is None:
      continue
    setattr(context, key, value)
