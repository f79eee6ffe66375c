import logging

from flask import Flask

from dispatcher.service import ChannelService, NotificationService

from api_gateway.health import HealthChecker
from api_gateway.log import setup_logging
from api_gateway.retry import RetryPublisher
from api_gateway.routes import health_bp, notifications_bp

logger = logging.getLogger(__name__)


def create_app(
    notification_service: NotificationService,
    channel_service: ChannelService,
    health_checker: HealthChecker,
    retry_publisher: RetryPublisher,
    log_level: str = "INFO",
) -> Flask:
    """Flask application factory.

    Args:
        notification_service: Notification use cases (real or mock for tests).
        channel_service: Channel management use cases.
        health_checker: Backs ``GET /health``.
        retry_publisher: Enqueues retry rounds on the dispatcher worker.
        log_level: Root log level.
    """
    setup_logging(log_level)

    app = Flask(__name__)
    app.extensions["notification_service"] = notification_service
    app.extensions["channel_service"] = channel_service
    app.extensions["health_checker"] = health_checker
    app.extensions["retry_publisher"] = retry_publisher

    app.register_blueprint(notifications_bp)
    app.register_blueprint(health_bp)

    logger.info("API gateway initialized")
    return app
