import logging
from uuid import UUID

from celery import Celery

logger = logging.getLogger(__name__)

RETRY_TASK_NAME = "dispatcher.tasks.retry_notification"


class RetryPublisher:
    """Enqueues retry rounds on the dispatcher's Celery worker."""

    def __init__(self, celery_app: Celery) -> None:
        self._celery = celery_app

    def enqueue(self, notification_id: UUID) -> str:
        """Send the retry task and return its task id."""
        result = self._celery.send_task(
            RETRY_TASK_NAME, kwargs={"notification_id": str(notification_id)}
        )
        logger.info(
            "Retry enqueued",
            extra={"notification_id": str(notification_id), "task_id": result.id},
        )
        return result.id
