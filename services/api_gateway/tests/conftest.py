import datetime
import uuid
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest
from flask import Flask
from flask.testing import FlaskClient

from notify_shared.enums import (
    ChannelKind,
    DeliveryStatus,
    NotificationCategory,
    NotificationStatus,
)
from notify_shared.schemas import ChannelView, DeliveryView, NotificationView

from dispatcher.service import ChannelService, NotificationService

from api_gateway.app import create_app
from api_gateway.health import HealthChecker
from api_gateway.retry import RetryPublisher

NOW = datetime.datetime(2026, 3, 1, 12, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture()
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def teacher_headers(user_id: uuid.UUID) -> dict[str, str]:
    return {"X-User-Id": str(user_id), "X-User-Role": "teacher"}


@pytest.fixture()
def student_headers(user_id: uuid.UUID) -> dict[str, str]:
    return {"X-User-Id": str(user_id), "X-User-Role": "student"}


@pytest.fixture()
def make_view() -> Callable[..., NotificationView]:
    def _make(
        status: NotificationStatus = NotificationStatus.SENT, **overrides: object
    ) -> NotificationView:
        fields: dict = {
            "id": uuid.uuid4(),
            "title": "Quiz tomorrow",
            "message": "Chapters 4 and 5",
            "category": NotificationCategory.REMINDER,
            "status": status,
            "sender_id": uuid.uuid4(),
            "recipient_id": uuid.uuid4(),
            "created_at": NOW,
            "updated_at": NOW,
            "deliveries": [
                DeliveryView(
                    id=uuid.uuid4(),
                    channel_id=uuid.uuid4(),
                    channel_kind=ChannelKind.EMAIL,
                    channel_address="s@example.com",
                    status=DeliveryStatus.SENT,
                    sent_at=NOW,
                )
            ],
        }
        fields.update(overrides)
        return NotificationView(**fields)

    return _make


@pytest.fixture()
def channel_view() -> ChannelView:
    return ChannelView(
        id=uuid.uuid4(),
        kind=ChannelKind.WEBHOOK,
        address="https://example.com/hook",
        is_active=True,
        is_verified=False,
        metadata={"secret": "***"},
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.fixture()
def notification_service() -> MagicMock:
    return MagicMock(spec=NotificationService)


@pytest.fixture()
def channel_service() -> MagicMock:
    return MagicMock(spec=ChannelService)


@pytest.fixture()
def health_checker() -> MagicMock:
    checker = MagicMock(spec=HealthChecker)
    checker.check.return_value = {
        "status": "healthy",
        "checks": {"database": {"healthy": True}, "handlers": {"email": True}},
    }
    return checker


@pytest.fixture()
def retry_publisher() -> MagicMock:
    publisher = MagicMock(spec=RetryPublisher)
    publisher.enqueue.return_value = "task-123"
    return publisher


@pytest.fixture()
def app(
    notification_service: MagicMock,
    channel_service: MagicMock,
    health_checker: MagicMock,
    retry_publisher: MagicMock,
) -> Flask:
    app = create_app(
        notification_service, channel_service, health_checker, retry_publisher
    )
    app.config["TESTING"] = True
    return app


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    return app.test_client()
