"""Data access repositories with constructor-injected sessions."""

import datetime
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from notify_shared.db.models import Channel, DeliveryRecord, Notification, User
from notify_shared.enums import TERMINAL_DELIVERY_STATUSES, DeliveryStatus
from notify_shared.errors import InvalidTransitionError


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class UserRepository:
    """Data access for the users table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, user: User) -> User:
        self._session.add(user)
        self._session.flush()
        return user

    def get_by_id(self, user_id: UUID) -> User | None:
        return self._session.get(User, user_id)

    def exists(self, user_id: UUID) -> bool:
        return self.get_by_id(user_id) is not None


class NotificationRepository:
    """Data access for the notifications table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, notification: Notification) -> Notification:
        """Add a new notification and flush to populate server defaults."""
        self._session.add(notification)
        self._session.flush()
        return notification

    def get_by_id(self, notification_id: UUID) -> Notification | None:
        return self._session.get(Notification, notification_id)

    def get_for_recipient(
        self, notification_id: UUID, recipient_id: UUID
    ) -> Notification | None:
        """Fetch a notification only if it belongs to *recipient_id*."""
        stmt = select(Notification).where(
            Notification.id == notification_id,
            Notification.recipient_id == recipient_id,
        )
        return self._session.scalars(stmt).first()

    def list_for_recipient(
        self,
        recipient_id: UUID,
        *,
        status: str | None = None,
        category: str | None = None,
    ) -> list[Notification]:
        """List a recipient's notifications newest-first, deliveries loaded."""
        stmt = (
            select(Notification)
            .options(
                selectinload(Notification.deliveries).selectinload(
                    DeliveryRecord.channel
                )
            )
            .where(Notification.recipient_id == recipient_id)
        )
        if status is not None:
            stmt = stmt.where(Notification.status == status)
        if category is not None:
            stmt = stmt.where(Notification.category == category)
        stmt = stmt.order_by(Notification.created_at.desc())
        return list(self._session.scalars(stmt).all())

    def update_status(
        self, notification_id: UUID, status: str
    ) -> Notification | None:
        """Set the notification status. Returns None if not found."""
        notification = self.get_by_id(notification_id)
        if notification is None:
            return None

        notification.status = status
        notification.updated_at = utcnow()
        self._session.flush()
        return notification

    def transition(
        self,
        notification_id: UUID,
        status: str,
        *,
        from_statuses: Iterable[str],
    ) -> bool:
        """Set *status* only while the row is in one of *from_statuses*.

        A single conditional UPDATE, so a concurrent writer that moved the
        row first turns this into a no-op. The loaded instance is refreshed
        either way. Returns whether the row moved.
        """
        stmt = (
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.status.in_(list(from_statuses)),
            )
            .values(status=status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        moved = self._session.execute(stmt).rowcount == 1
        self._session.get(Notification, notification_id, populate_existing=True)
        return moved


class ChannelRepository:
    """Data access for recipient-owned notification channels."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, channel: Channel) -> Channel:
        self._session.add(channel)
        self._session.flush()
        return channel

    def get_by_id(self, channel_id: UUID) -> Channel | None:
        return self._session.get(Channel, channel_id)

    def get_for_owner(self, channel_id: UUID, owner_id: UUID) -> Channel | None:
        """Fetch a channel only if it belongs to *owner_id*."""
        stmt = select(Channel).where(
            Channel.id == channel_id,
            Channel.owner_id == owner_id,
        )
        return self._session.scalars(stmt).first()

    def find(self, owner_id: UUID, kind: str, address: str) -> Channel | None:
        """Look up by the (owner, kind, address) uniqueness triple."""
        stmt = select(Channel).where(
            Channel.owner_id == owner_id,
            Channel.kind == kind,
            Channel.address == address,
        )
        return self._session.scalars(stmt).first()

    def list_for_owner(
        self, owner_id: UUID, *, active_only: bool = False
    ) -> list[Channel]:
        """List channels newest-first (creation order within a timestamp)."""
        stmt = select(Channel).where(Channel.owner_id == owner_id)
        if active_only:
            stmt = stmt.where(Channel.is_active.is_(True))
        stmt = stmt.order_by(Channel.created_at.desc())
        return list(self._session.scalars(stmt).all())

    def update(
        self,
        channel_id: UUID,
        *,
        is_active: bool | None = None,
        is_verified: bool | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Channel | None:
        """Apply the provided fields (last write wins). None if not found."""
        channel = self.get_by_id(channel_id)
        if channel is None:
            return None

        if is_active is not None:
            channel.is_active = is_active
        if is_verified is not None:
            channel.is_verified = is_verified
        if metadata is not None:
            channel.channel_metadata = dict(metadata)
        channel.updated_at = utcnow()

        self._session.flush()
        return channel


class DeliveryRecordRepository:
    """Data access for per-channel delivery records.

    Records in a terminal status (delivered, failed) are never rewritten;
    a retry appends a new record instead.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, record: DeliveryRecord) -> DeliveryRecord:
        self._session.add(record)
        self._session.flush()
        return record

    def get_by_id(self, record_id: UUID) -> DeliveryRecord | None:
        return self._session.get(DeliveryRecord, record_id)

    def list_for_notification(self, notification_id: UUID) -> list[DeliveryRecord]:
        stmt = (
            select(DeliveryRecord)
            .options(selectinload(DeliveryRecord.channel))
            .where(DeliveryRecord.notification_id == notification_id)
            .order_by(DeliveryRecord.retry_count, DeliveryRecord.created_at)
        )
        return list(self._session.scalars(stmt).all())

    def latest_per_channel(self, notification_id: UUID) -> list[DeliveryRecord]:
        """Return the most recent attempt for each channel of a notification.

        Attempts are ordered by retry_count, which only grows per channel.
        """
        latest: dict[UUID, DeliveryRecord] = {}
        for record in self.list_for_notification(notification_id):
            current = latest.get(record.channel_id)
            if current is None or record.retry_count >= current.retry_count:
                latest[record.channel_id] = record
        return list(latest.values())

    def update_status(
        self,
        record_id: UUID,
        status: str,
        *,
        provider_message_id: str | None = None,
        error_message: str | None = None,
        result_metadata: dict[str, Any] | None = None,
        at: datetime.datetime | None = None,
    ) -> DeliveryRecord | None:
        """Move a record to *status*, stamping the matching timestamp.

        Raises InvalidTransitionError when the record is already terminal.
        Returns None if the record does not exist.
        """
        record = self.get_by_id(record_id)
        if record is None:
            return None
        if record.status in TERMINAL_DELIVERY_STATUSES:
            raise InvalidTransitionError(
                f"Delivery record {record_id} is already {record.status}"
            )

        now = at or utcnow()
        record.status = status

        if status in (DeliveryStatus.SENT, DeliveryStatus.DELIVERED):
            record.sent_at = record.sent_at or now
            record.error_message = None
        if status == DeliveryStatus.DELIVERED:
            record.delivered_at = record.delivered_at or now
        if status == DeliveryStatus.FAILED:
            record.failed_at = now
            record.error_message = error_message or "Delivery failed"
        elif status == DeliveryStatus.RETRYING and error_message is not None:
            record.error_message = error_message

        if provider_message_id is not None:
            record.provider_message_id = provider_message_id
        if result_metadata is not None:
            record.result_metadata = dict(result_metadata)
        record.updated_at = now

        self._session.flush()
        return record
