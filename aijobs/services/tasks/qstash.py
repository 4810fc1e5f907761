from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from aijobs.config import Settings
from aijobs.services.tasks.interface import TaskPublisher, TaskPublishError

logger = logging.getLogger(__name__)


class QStashPublisher(TaskPublisher):
  """Publishes worker invocations through Upstash QStash."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings

  def _headers(self, deduplication_id: str, delay_seconds: int | None) -> dict[str, str]:
    if not self.settings.qstash_token:
      raise RuntimeError("QStash token not configured.")
    headers = {
      "authorization": f"Bearer {self.settings.qstash_token}",
      "content-type": "application/json",
      "Upstash-Deduplication-Id": deduplication_id,
    }
    # QStash holds the message and delivers it once the delay has elapsed.
    if delay_seconds:
      headers["Upstash-Delay"] = f"{int(delay_seconds)}s"
    return headers

  async def publish(self, *, url: str, deduplication_id: str, body: dict[str, Any], delay_seconds: int | None = None) -> None:
    """Publish a JSON message for url; raise TaskPublishError on any non-2xx answer."""
    endpoint = f"{self.settings.qstash_url}/v2/publish/{quote(url, safe='')}"

    try:
      async with httpx.AsyncClient(trust_env=False, timeout=30.0) as client:
        response = await client.post(endpoint, json=body, headers=self._headers(deduplication_id, delay_seconds))
    except httpx.RequestError as e:
      logger.error("QStash publish request failed for %s: %s", deduplication_id, e)
      raise TaskPublishError(f"QStash publish request failed: {e}") from e

    if response.is_error:
      logger.error("QStash publish returned %s for %s: %s", response.status_code, deduplication_id, response.text)
      raise TaskPublishError(f"QStash publish failed ({response.status_code}): {response.text}")

    logger.info("Published %s to QStash (delay=%ss)", deduplication_id, delay_seconds or 0)
