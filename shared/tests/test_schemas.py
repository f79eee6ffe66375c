import uuid

import pytest
from pydantic import ValidationError
from sqlalchemy.orm import Session

from notify_shared.db.models import Channel, DeliveryRecord, Notification, User
from notify_shared.enums import ChannelKind, DeliveryStatus, NotificationCategory
from notify_shared.schemas import (
    ChannelView,
    CreateChannelRequest,
    CreateNotificationRequest,
    ListNotificationsQuery,
    NotificationView,
    redact,
)


class TestCreateNotificationRequest:
    def test_minimal(self):
        req = CreateNotificationRequest.model_validate({
            "title": "Exam moved",
            "message": "The exam is now on Monday",
            "category": "announcement",
            "recipient_id": str(uuid.uuid4()),
        })
        assert req.category == NotificationCategory.ANNOUNCEMENT
        assert req.channels is None
        assert req.context == {}

    def test_channels_deduplicated_in_order(self):
        req = CreateNotificationRequest.model_validate({
            "title": "t",
            "message": "m",
            "category": "system",
            "recipient_id": str(uuid.uuid4()),
            "channels": ["push", "email", "push"],
        })
        assert req.channels == [ChannelKind.PUSH, ChannelKind.EMAIL]

    @pytest.mark.parametrize(
        "override",
        [
            {"title": ""},
            {"category": "gossip"},
            {"recipient_id": "not-a-uuid"},
            {"channels": ["carrier-pigeon"]},
            {"unexpected": True},
        ],
    )
    def test_rejects_invalid(self, override):
        body = {
            "title": "t",
            "message": "m",
            "category": "system",
            "recipient_id": str(uuid.uuid4()),
        }
        body.update(override)
        with pytest.raises(ValidationError):
            CreateNotificationRequest.model_validate(body)


class TestChannelRequests:
    def test_address_stripped(self):
        req = CreateChannelRequest(kind=ChannelKind.EMAIL, address="  a@b.io ")
        assert req.address == "a@b.io"
        assert req.is_active is True

    def test_list_query_accepts_empty(self):
        query = ListNotificationsQuery.model_validate({})
        assert query.status is None
        assert query.category is None


class TestViews:
    def test_redact_masks_secrets(self):
        assert redact({"secret": "s", "host": "h"}) == {"secret": "***", "host": "h"}
        assert redact(None) == {}

    def test_channel_view_hides_secret(self, db_session: Session, student: User):
        channel = Channel(
            owner_id=student.id,
            kind=ChannelKind.WEBHOOK,
            address="https://example.com/hook",
            channel_metadata={"secret": "hunter2", "host": "example.com"},
        )
        db_session.add(channel)
        db_session.flush()

        view = ChannelView.from_model(channel)

        assert view.metadata == {"secret": "***", "host": "example.com"}

    def test_notification_view_includes_deliveries(
        self, db_session: Session, teacher: User, student: User
    ):
        n = Notification(
            title="t",
            body="the body",
            category=NotificationCategory.GRADE,
            sender_id=teacher.id,
            recipient_id=student.id,
        )
        channel = Channel(
            owner_id=student.id, kind=ChannelKind.EMAIL, address="s@example.com"
        )
        db_session.add_all([n, channel])
        db_session.flush()
        record = DeliveryRecord(
            notification_id=n.id,
            channel_id=channel.id,
            status=DeliveryStatus.FAILED,
            error_message="bounced",
        )
        db_session.add(record)
        db_session.flush()

        view = NotificationView.from_model(n, [record])
        data = view.model_dump(mode="json")

        assert data["message"] == "the body"
        assert data["deliveries"][0]["channel_kind"] == "email"
        assert data["deliveries"][0]["channel_address"] == "s@example.com"
        assert data["deliveries"][0]["error_message"] == "bounced"
