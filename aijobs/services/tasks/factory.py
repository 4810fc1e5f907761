from __future__ import annotations

from aijobs.config import Settings
from aijobs.services.tasks.interface import TaskPublisher


def get_task_publisher(settings: Settings) -> TaskPublisher:
  """Factory to get the configured scheduler bridge."""
  # Import lazily so google-cloud-tasks is only loaded when the gcp provider is active.
  if settings.task_service_provider == "gcp":
    from aijobs.services.tasks.gcp import CloudTasksPublisher

    return CloudTasksPublisher(settings)
  if settings.task_service_provider == "qstash":
    from aijobs.services.tasks.qstash import QStashPublisher

    return QStashPublisher(settings)
  from aijobs.services.tasks.local import LocalHttpPublisher

  return LocalHttpPublisher(settings)
