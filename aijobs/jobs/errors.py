"""Typed failures raised by the job engine."""

from __future__ import annotations


class JobEngineError(Exception):
  """Base class for job engine failures."""


class WorkerAuthorizationError(JobEngineError):
  """Raised when the worker secret is missing or does not match."""


class WorkerBadRequestError(JobEngineError):
  """Raised when a worker invocation does not carry a usable job id."""


class RegistryConfigurationError(JobEngineError):
  """Raised at startup when handlers do not cover the declared job types exactly."""


class JobExecutionError(JobEngineError):
  """Raised when a claimed job cannot be executed; handled by the retry policy."""

  kind = "execution"


class UnknownJobTypeError(JobExecutionError):
  """Raised when no handler is registered for a job's type tag."""

  kind = "unknown_job_type"

  def __init__(self, job_type: str) -> None:
    super().__init__(f"Unknown job_type: {job_type}")
    self.job_type = job_type


class JobPayloadValidationError(JobExecutionError):
  """Raised before any external call when required payload fields are missing."""

  kind = "validation"

  def __init__(self, job_type: str, missing: list[str]) -> None:
    super().__init__(f"Missing payload field(s) for {job_type}: {', '.join(f'payload.{name}' for name in missing)}")
    self.job_type = job_type
    self.missing = missing


def error_kind(exc: BaseException) -> str:
  """Return a stable label used in logs to tell validation and execution failures apart."""
  return getattr(exc, "kind", "execution")
