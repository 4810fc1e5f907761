"""Unit tests for the task-local execution context."""

from __future__ import annotations

import asyncio
import logging

import pytest

from aijobs.core.logging import ContextLogFilter
from aijobs.telemetry.context import execution_context, get_context, patch_context, with_context
from aijobs.telemetry.events import log_event, log_timer


def test_patch_outside_scope_is_a_noop() -> None:
  assert get_context() is None
  patch_context(job_id="ignored")
  assert get_context() is None


def test_patch_rejects_unknown_fields() -> None:
  with execution_context({"request_id": "r1"}):
    with pytest.raises(TypeError):
      patch_context(not_a_field="x")


def test_patch_skips_none_values() -> None:
  with execution_context({"request_id": "r1", "user_id": "u1"}) as context:
    patch_context(user_id=None, job_id="j1")
    assert context.user_id == "u1"
    assert context.job_id == "j1"


def test_scope_restores_previous_context() -> None:
  with execution_context({"request_id": "outer"}):
    with execution_context({"request_id": "inner"}):
      assert get_context().request_id == "inner"
    assert get_context().request_id == "outer"
  assert get_context() is None


def test_seed_ignores_unknown_keys_and_sets_start_time() -> None:
  with execution_context({"request_id": "r1", "bogus": 1}) as context:
    assert context.request_id == "r1"
    assert context.started_at_ms is not None
    assert context.elapsed_ms() >= 0


@pytest.mark.anyio
async def test_concurrent_scopes_do_not_leak() -> None:
  async def invocation(name: str, delay: float) -> tuple[str | None, str | None]:
    patch_context(job_id=f"job-{name}")
    await asyncio.sleep(delay)
    context = get_context()
    return context.request_id, context.job_id

  results = await asyncio.gather(
    with_context({"request_id": "a"}, invocation, "a", 0.02),
    with_context({"request_id": "b"}, invocation, "b", 0.0),
    with_context({"request_id": "c"}, invocation, "c", 0.01),
  )

  assert results == [("a", "job-a"), ("b", "job-b"), ("c", "job-c")]
  assert get_context() is None


@pytest.mark.anyio
async def test_patch_is_visible_to_tasks_spawned_in_scope() -> None:
  async def child() -> str | None:
    await asyncio.sleep(0)
    return get_context().job_id

  async def parent() -> str | None:
    task = asyncio.create_task(child())
    # The child shares the scope object, so a later patch is visible to it.
    patch_context(job_id="late")
    return await task

  assert await with_context({"request_id": "r"}, parent) == "late"


@pytest.mark.anyio
async def test_with_context_returns_result_and_propagates_errors() -> None:
  async def ok(value: int) -> int:
    return value * 2

  async def fail() -> None:
    raise RuntimeError("nope")

  assert await with_context(None, ok, 21) == 42
  with pytest.raises(RuntimeError):
    await with_context(None, fail)
  assert get_context() is None


def test_log_filter_injects_context_fields() -> None:
  record = logging.LogRecord("aijobs.test", logging.INFO, __file__, 1, "hello", None, None)
  with execution_context({"request_id": "req-1", "job_id": "job-7"}):
    ContextLogFilter().filter(record)
  assert record.request_id == "req-1"
  assert record.job_id == "job-7"
  assert record.user_id == "-"


def test_log_event_carries_context_and_metadata(caplog: pytest.LogCaptureFixture) -> None:
  logger = logging.getLogger("aijobs.test.events")
  with caplog.at_level(logging.INFO, logger="aijobs.test.events"):
    with execution_context({"request_id": "req-2"}):
      log_event(logger, "success", "ai_jobs.test.ok", status_code=200, attempts=2)

  record = caplog.records[-1]
  assert record.event == "ai_jobs.test.ok"
  assert record.outcome == "success"
  assert record.status_code == 200
  assert record.duration_ms is not None
  assert '"attempts": 2' in record.getMessage()


def test_log_event_rejects_unknown_level() -> None:
  with pytest.raises(ValueError):
    log_event(logging.getLogger("aijobs.test"), "fatal", "x")


def test_log_timer_logs_fatal_and_reraises(caplog: pytest.LogCaptureFixture) -> None:
  logger = logging.getLogger("aijobs.test.timer")
  with caplog.at_level(logging.INFO, logger="aijobs.test.timer"):
    with pytest.raises(KeyError):
      with log_timer(logger, "ai_jobs.test.step"):
        raise KeyError("missing")

  assert caplog.records[-1].event == "ai_jobs.test.step.fatal"
  assert caplog.records[-1].levelno == logging.ERROR
