"""Built-in job handlers and the default registry.

Handlers own their business logic and side effects; the engine only observes
whether ``handle`` returned a result or raised.
"""

from __future__ import annotations

import logging
from typing import Any, Final, Protocol

import httpx

from aijobs.config import Settings
from aijobs.jobs.dispatch import JobHandler, JobHandlerRegistry, resolve_required_field
from aijobs.jobs.models import JobRecord
from aijobs.telemetry.context import get_context, patch_context

logger = logging.getLogger(__name__)

ADVENTURE_BRIEFING: Final[str] = "adventure_briefing"
QUEST_PHOTO_MESSAGE: Final[str] = "quest_photo_message"

# Every tag producers may enqueue; the registry must cover exactly this set.
DECLARED_JOB_TYPES: Final[frozenset[str]] = frozenset({ADVENTURE_BRIEFING, QUEST_PHOTO_MESSAGE})


class BriefingGenerator(Protocol):
  """External AI collaborator that writes and persists an adventure briefing."""

  async def generate_briefing(self, adventure_id: str, *, correlation: dict[str, Any]) -> dict[str, Any]:
    """Return {"briefing": ..., "meta": ...} for the adventure."""


class HttpBriefingGenerator:
  """Call the narrative service over HTTP to generate and store a briefing."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings

  async def generate_briefing(self, adventure_id: str, *, correlation: dict[str, Any]) -> dict[str, Any]:
    if not self.settings.briefing_service_url:
      raise RuntimeError("AIJOBS_BRIEFING_SERVICE_URL is not configured.")

    url = f"{self.settings.briefing_service_url.rstrip('/')}/adventures/{adventure_id}/briefing"
    headers = {"content-type": "application/json"}
    context = get_context()
    # Forward the request id so the narrative service can join its logs to ours.
    if context is not None and context.request_id:
      headers["x-request-id"] = context.request_id

    async with httpx.AsyncClient(trust_env=False, timeout=float(self.settings.briefing_timeout_seconds)) as client:
      response = await client.post(url, json={"adventure_id": adventure_id, "correlation": correlation}, headers=headers)
      response.raise_for_status()
      return response.json()


class AdventureBriefingHandler:
  """Generate the briefing text for an adventure."""

  job_type = ADVENTURE_BRIEFING
  required_fields: tuple[str, ...] = ("adventure_id",)

  def __init__(self, generator: BriefingGenerator) -> None:
    self._generator = generator

  async def handle(self, job: JobRecord) -> dict[str, Any]:
    adventure_id = str(resolve_required_field(job, "adventure_id"))
    patch_context(adventure_id=adventure_id)
    logger.info("Generating adventure briefing for %s", adventure_id)
    generated = await self._generator.generate_briefing(adventure_id, correlation=job.correlation_ids())
    if "briefing" not in generated:
      raise ValueError("Briefing service response is missing 'briefing'.")
    return {"adventure_id": adventure_id, "briefing": generated["briefing"], "meta": generated.get("meta")}


class QuestPhotoMessageHandler:
  """Acknowledge a quest photo so the game master thread can reference it."""

  job_type = QUEST_PHOTO_MESSAGE
  required_fields: tuple[str, ...] = ("chapter_quest_id",)

  async def handle(self, job: JobRecord) -> dict[str, Any]:
    """Record the acknowledgement only; no reply text is generated for quest photos."""
    chapter_quest_id = str(resolve_required_field(job, "chapter_quest_id"))
    patch_context(chapter_quest_id=chapter_quest_id)
    return {"ok": True, "job_type": job.job_type, "chapter_quest_id": chapter_quest_id}


def build_default_registry(settings: Settings, *, briefing_generator: BriefingGenerator | None = None) -> JobHandlerRegistry:
  """Build the registry for every declared job type."""
  handlers: list[JobHandler] = [
    AdventureBriefingHandler(briefing_generator or HttpBriefingGenerator(settings)),
    QuestPhotoMessageHandler(),
  ]
  return JobHandlerRegistry(handlers, DECLARED_JOB_TYPES)
