"""Celery task for externally triggered retry rounds."""

import logging
from uuid import UUID

from notify_shared.errors import InvalidTransitionError, NotFoundError

from dispatcher.celery import app
from dispatcher.service import NotificationService

logger = logging.getLogger(__name__)

RETRY_TASK_NAME = "dispatcher.tasks.retry_notification"


@app.task(name=RETRY_TASK_NAME)
def retry_notification(notification_id: str) -> str | None:
    """Re-send the failed channels of one notification.

    Enqueued by the gateway with a ``notification_id`` string. Unknown or
    non-retryable notifications are logged and skipped. Returns the
    resulting notification status.
    """
    service: NotificationService = app.conf._notification_service
    log_ctx = {"notification_id": notification_id}

    try:
        view = service.retry_failed(UUID(notification_id))
    except NotFoundError:
        logger.warning("Notification not found, skipping", extra=log_ctx)
        return None
    except InvalidTransitionError as exc:
        logger.info("Notification not retryable, skipping", extra={**log_ctx, "reason": str(exc)})
        return None

    logger.info("Retry round finished", extra={**log_ctx, "status": str(view.status)})
    return str(view.status)
