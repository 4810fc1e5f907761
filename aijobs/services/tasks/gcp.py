from __future__ import annotations

import hashlib
import json
import logging
import re
from datetime import UTC, datetime, timedelta
from typing import Any

from google.api_core.exceptions import AlreadyExists
from google.cloud import tasks_v2
from google.protobuf import timestamp_pb2
from starlette.concurrency import run_in_threadpool

from aijobs.config import Settings
from aijobs.services.tasks.interface import TaskPublisher

logger = logging.getLogger(__name__)

_TASK_ID_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")


def task_id_for(deduplication_id: str) -> str:
  """Map a dedup id onto the Cloud Tasks task id alphabet, keeping distinct ids distinct."""
  readable = _TASK_ID_UNSAFE.sub("-", deduplication_id)[:80]
  digest = hashlib.sha256(deduplication_id.encode()).hexdigest()[:16]
  return f"{readable}-{digest}"


class CloudTasksPublisher(TaskPublisher):
  """Publishes worker invocations to Google Cloud Tasks.

  Cloud Tasks refuses a second task with the same name, which gives the
  deduplication window; schedule_time carries the retry delay.
  """

  def __init__(self, settings: Settings) -> None:
    self.settings = settings
    self.client = tasks_v2.CloudTasksClient()

  def _build_task(self, *, url: str, deduplication_id: str, body: dict[str, Any], delay_seconds: int | None) -> dict[str, Any]:
    parent = self.settings.cloud_tasks_queue_path
    http_request: dict[str, Any] = {
      "http_method": tasks_v2.HttpMethod.POST,
      "url": url,
      "headers": {"Content-Type": "application/json"},
      "body": json.dumps(body).encode(),
    }
    # Cloud Run invoker auth is optional; the worker secret in the body is always checked.
    if self.settings.cloud_run_invoker_service_account:
      http_request["oidc_token"] = {"service_account_email": self.settings.cloud_run_invoker_service_account}

    task: dict[str, Any] = {"name": f"{parent}/tasks/{task_id_for(deduplication_id)}", "http_request": http_request}
    if delay_seconds:
      schedule_time = timestamp_pb2.Timestamp()
      schedule_time.FromDatetime(datetime.now(UTC) + timedelta(seconds=delay_seconds))
      task["schedule_time"] = schedule_time
    return task

  async def publish(self, *, url: str, deduplication_id: str, body: dict[str, Any], delay_seconds: int | None = None) -> None:
    """Create a Cloud Task; a task that already exists means the push was deduplicated."""
    if not self.settings.cloud_tasks_queue_path:
      raise RuntimeError("Cloud Tasks queue path not configured.")

    task = self._build_task(url=url, deduplication_id=deduplication_id, body=body, delay_seconds=delay_seconds)

    try:
      response = await run_in_threadpool(self.client.create_task, request={"parent": self.settings.cloud_tasks_queue_path, "task": task})
    except AlreadyExists:
      logger.info("Cloud Task for %s already exists; publish deduplicated.", deduplication_id)
      return

    logger.info("Enqueued task %s for %s (delay=%ss)", response.name, deduplication_id, delay_seconds or 0)
