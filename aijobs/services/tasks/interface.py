from __future__ import annotations

from typing import Any, Protocol


class TaskPublishError(RuntimeError):
  """Raised when the scheduler bridge refuses or fails a publish request."""


class TaskPublisher(Protocol):
  """Push scheduler that guarantees an eventual HTTP call of the worker entry point."""

  async def publish(self, *, url: str, deduplication_id: str, body: dict[str, Any], delay_seconds: int | None = None) -> None:
    """Schedule a POST of body to url, collapsing requests that share deduplication_id."""
    ...
