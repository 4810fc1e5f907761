from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any
from urllib.parse import urlparse

import httpx

from aijobs.config import Settings
from aijobs.services.tasks.interface import TaskPublisher

logger = logging.getLogger(__name__)

# Most recent dedup ids remembered per publisher; older ones are forgotten.
DEDUP_WINDOW = 1024


class LocalHttpPublisher(TaskPublisher):
  """Delivers worker invocations immediately over HTTP to simulate a push scheduler."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings
    self._seen: OrderedDict[str, None] = OrderedDict()

  def _should_use_asgi_transport(self, url: str) -> bool:
    """Decide if we should route requests in-process via ASGITransport."""
    parsed = urlparse(url)
    hostname = (parsed.hostname or "").lower()
    return hostname in {"localhost", "127.0.0.1", "::1", "0.0.0.0"}

  def _build_client(self, url: str) -> httpx.AsyncClient:
    """Build an httpx client for local task dispatch."""
    # Never trust environment proxy variables for internal task dispatch.
    if self._should_use_asgi_transport(url):
      from aijobs.main import app

      parsed = urlparse(url)
      transport = httpx.ASGITransport(app=app)
      return httpx.AsyncClient(transport=transport, base_url=f"{parsed.scheme}://{parsed.netloc}", trust_env=False)
    return httpx.AsyncClient(trust_env=False)

  async def publish(self, *, url: str, deduplication_id: str, body: dict[str, Any], delay_seconds: int | None = None) -> None:
    """POST body to url right away; delays are not honored locally."""
    # Dedup only lasts for this publisher instance, enough for a dev server.
    if deduplication_id in self._seen:
      logger.info("Local publish for %s deduplicated.", deduplication_id)
      return

    if delay_seconds:
      logger.info("Local publisher ignores delay of %ss for %s", delay_seconds, deduplication_id)

    try:
      async with self._build_client(url) as client:
        logger.info("Dispatching task locally to %s", url)
        response = await client.post(url, json=body, timeout=1800.0)
        response.raise_for_status()

    except httpx.HTTPStatusError as e:
      logger.error("Local task dispatch returned %s for %s: %s", e.response.status_code, deduplication_id, e.response.text)
      raise
    except httpx.RequestError as e:
      logger.error("Failed to dispatch local task for %s: %s", deduplication_id, e)
      raise

    self._seen[deduplication_id] = None
    while len(self._seen) > DEDUP_WINDOW:
      self._seen.popitem(last=False)
