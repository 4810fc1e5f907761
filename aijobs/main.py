from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from aijobs.api.routes import jobs, tasks, worker
from aijobs.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler
from aijobs.core.lifespan import lifespan
from aijobs.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

app = FastAPI(title="aijobs-engine", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(tasks.router, prefix="/internal", tags=["tasks"])
app.include_router(worker.router, prefix="/api/ai/worker", tags=["worker"])
