"""Job handler registry and the central dispatch function."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Protocol

from aijobs.jobs.errors import JobPayloadValidationError, RegistryConfigurationError, UnknownJobTypeError
from aijobs.jobs.models import JobRecord

logger = logging.getLogger(__name__)


class JobHandler(Protocol):
  """Processor contract for one job_type."""

  job_type: str
  required_fields: tuple[str, ...]

  async def handle(self, job: JobRecord) -> dict[str, Any]:
    """Execute a claimed job and return a JSON-serializable result."""


class JobHandlerRegistry:
  """Registry mapping job_type tags to handlers, checked against the declared tag set."""

  def __init__(self, handlers: Iterable[JobHandler], declared_types: Iterable[str]) -> None:
    declared = frozenset(declared_types)
    mapping: dict[str, JobHandler] = {}
    for handler in handlers:
      if handler.job_type in mapping:
        raise RegistryConfigurationError(f"Duplicate handler for job_type: {handler.job_type}")
      mapping[handler.job_type] = handler

    missing = sorted(declared - mapping.keys())
    if missing:
      raise RegistryConfigurationError(f"No handler registered for job_type(s): {', '.join(missing)}")
    undeclared = sorted(mapping.keys() - declared)
    if undeclared:
      raise RegistryConfigurationError(f"Handler registered for undeclared job_type(s): {', '.join(undeclared)}")

    self._handlers = mapping
    self._declared = declared

  @property
  def job_types(self) -> frozenset[str]:
    return self._declared

  def resolve(self, job_type: str) -> JobHandler:
    """Resolve the handler for a job type."""
    handler = self._handlers.get(job_type)
    if handler is None:
      raise UnknownJobTypeError(job_type)
    return handler


def resolve_required_field(job: JobRecord, name: str) -> Any:
  """Read a required value from the payload, falling back to the job column of the same name."""
  value = (job.payload or {}).get(name)
  if value in (None, ""):
    value = getattr(job, name, None)
  return value if value not in (None, "") else None


def validate_payload(job: JobRecord, handler: JobHandler) -> None:
  """Raise before any external call when the handler's required fields are absent."""
  missing = [name for name in handler.required_fields if resolve_required_field(job, name) is None]
  if missing:
    raise JobPayloadValidationError(job.job_type, missing)


async def dispatch_job(job: JobRecord, registry: JobHandlerRegistry) -> dict[str, Any]:
  """Route a claimed job to its handler and return the handler's result."""
  handler = registry.resolve(job.job_type)
  validate_payload(job, handler)
  logger.debug("Dispatching job %s to %s handler", job.id, job.job_type)
  result = await handler.handle(job)
  if not isinstance(result, dict):
    raise TypeError(f"Handler for {job.job_type} returned {type(result).__name__}, expected dict")
  return result
