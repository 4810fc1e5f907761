import logging
import re
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

from aijobs.telemetry.context import execution_context
from aijobs.utils.ids import generate_request_id

logger = logging.getLogger("aijobs.core.middleware")

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def _normalize_headers(scope: Scope) -> dict[str, str]:
  """Normalize scope headers into a lowercase mapping."""
  return {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}


def _build_request_url(scope: Scope) -> str:
  """Build a readable URL path for logging without relying on Request bodies."""
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  if query_string:
    return f"{path}?{query_string.decode('latin-1')}"

  return path


def _resolve_request_id(headers: dict[str, str]) -> str:
  """Honor a caller-supplied x-request-id when it looks sane, otherwise mint one."""
  incoming = (headers.get("x-request-id") or "").strip()
  if incoming and _REQUEST_ID_PATTERN.match(incoming):
    return incoming
  return generate_request_id()


class RequestLoggingMiddleware:
  """Open an execution context per request and log request/response metadata."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    """Record request/response metadata without logging request bodies."""
    # Skip non-HTTP scopes to avoid interfering with websocket or lifespan events.
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    headers = _normalize_headers(scope)
    request_id = _resolve_request_id(headers)
    scope.setdefault("state", {})["request_id"] = request_id
    method = scope.get("method", "UNKNOWN")
    path = scope.get("path", "")

    with execution_context({"request_id": request_id, "route": path, "method": method}) as context:
      logger.info("Incoming request %s %s", method, _build_request_url(scope))
      content_type = headers.get("content-type")
      content_length = headers.get("content-length")
      if content_type or content_length:
        logger.debug("Request metadata content-type=%s content-length=%s", content_type, content_length)

      status_code: int | None = None

      async def send_wrapper(message: dict[str, Any]) -> None:
        nonlocal status_code
        if message.get("type") == "http.response.start":
          status_code = message.get("status")
          # Attach a request id to responses to correlate clients with server logs.
          response_headers = MutableHeaders(scope=message)
          if "x-request-id" not in response_headers:
            response_headers["x-request-id"] = request_id

        await send(message)

      await self.app(scope, receive, send_wrapper)

      logger.info("Response status=%s (took %sms)", status_code or 0, context.elapsed_ms())


class SecurityHeadersMiddleware:
  """Middleware to strip sensitive headers from responses."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_wrapper(message: dict[str, Any]) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        if "x-powered-by" in headers:
          del headers["x-powered-by"]
        if "server" in headers:
          del headers["server"]

      await send(message)

    await self.app(scope, receive, send_wrapper)
