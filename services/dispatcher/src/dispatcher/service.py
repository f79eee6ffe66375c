"""Use cases exposed to the HTTP gateway and the retry worker."""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from notify_shared.db.models import Channel, DeliveryRecord, Notification
from notify_shared.db.repositories import (
    ChannelRepository,
    DeliveryRecordRepository,
    NotificationRepository,
    UserRepository,
)
from notify_shared.enums import DeliveryStatus, NotificationStatus
from notify_shared.errors import (
    AddressValidationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionError,
)
from notify_shared.schemas import (
    ChannelTestResult,
    ChannelView,
    CreateChannelRequest,
    CreateNotificationRequest,
    NotificationView,
    UpdateChannelRequest,
)

from dispatcher.handlers import HandlerRegistry
from dispatcher.orchestrator import DispatchOrchestrator, PendingDelivery, payload_for
from dispatcher.resolution import DispatchTarget, resolve_targets

logger = logging.getLogger(__name__)

RETRYABLE_NOTIFICATION_STATUSES = frozenset(
    {NotificationStatus.DISPATCHING, NotificationStatus.SENT}
)


class NotificationService:
    """Create, list, acknowledge and retry notifications."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        orchestrator: DispatchOrchestrator,
    ) -> None:
        self._session_factory = session_factory
        self._orchestrator = orchestrator

    def create_notification(
        self, sender_id: UUID, request: CreateNotificationRequest
    ) -> NotificationView:
        """Persist a notification and run its first dispatch round.

        Raises PreconditionError (nothing persisted) when the sender or
        recipient is unknown. Channel problems never raise; they end up as
        failed delivery records.
        """
        with self._session_factory() as session:
            users = UserRepository(session)
            if not users.exists(request.recipient_id):
                raise PreconditionError(f"Recipient {request.recipient_id} not found")
            if not users.exists(sender_id):
                raise PreconditionError(f"Sender {sender_id} not found")

            notification = NotificationRepository(session).create(
                Notification(
                    title=request.title,
                    body=request.message,
                    category=request.category,
                    context=request.context,
                    sender_id=sender_id,
                    recipient_id=request.recipient_id,
                    status=NotificationStatus.CREATED,
                )
            )
            channels = ChannelRepository(session).list_for_owner(
                request.recipient_id, active_only=True
            )
            targets = resolve_targets(channels, request.channels)
            pending = self._orchestrator.prepare(session, notification, targets)
            payload = payload_for(notification)
            notification_id = notification.id
            session.commit()

        logger.info(
            "Notification created",
            extra={
                "notification_id": str(notification_id),
                "recipient_id": str(request.recipient_id),
                "category": str(request.category),
                "targets": len(pending),
            },
        )
        self._orchestrator.run_round(notification_id, pending, payload)
        return self.get_notification(notification_id)

    def get_notification(self, notification_id: UUID) -> NotificationView:
        with self._session_factory() as session:
            notification = NotificationRepository(session).get_by_id(notification_id)
            if notification is None:
                raise NotFoundError(f"Notification {notification_id} not found")
            records = DeliveryRecordRepository(session).list_for_notification(
                notification_id
            )
            return NotificationView.from_model(notification, records)

    def list_notifications(
        self,
        recipient_id: UUID,
        status: str | None = None,
        category: str | None = None,
    ) -> list[NotificationView]:
        with self._session_factory() as session:
            notifications = NotificationRepository(session).list_for_recipient(
                recipient_id, status=status, category=category
            )
            return [NotificationView.from_model(n) for n in notifications]

    def mark_read(self, recipient_id: UUID, notification_id: UUID) -> NotificationView:
        """``sent -> read``. Marking an already-read notification is a no-op."""
        with self._session_factory() as session:
            repo = NotificationRepository(session)
            notification = repo.get_for_recipient(notification_id, recipient_id)
            if notification is None:
                raise NotFoundError(f"Notification {notification_id} not found")

            if not repo.transition(
                notification.id,
                NotificationStatus.READ,
                from_statuses={NotificationStatus.SENT},
            ) and notification.status != NotificationStatus.READ:
                raise InvalidTransitionError(
                    f"Cannot mark a {notification.status} notification as read"
                )
            session.commit()

            records = DeliveryRecordRepository(session).list_for_notification(
                notification.id
            )
            return NotificationView.from_model(notification, records)

    def retry_failed(self, notification_id: UUID) -> NotificationView:
        """Re-send every channel whose latest attempt failed.

        Each retried channel gets a new record in ``retrying`` carrying the
        previous error and an incremented retry count; the aggregate is
        recomputed over the latest record of every channel.
        """
        with self._session_factory() as session:
            notifications = NotificationRepository(session)
            records = DeliveryRecordRepository(session)

            notification = notifications.get_by_id(notification_id)
            if notification is None:
                raise NotFoundError(f"Notification {notification_id} not found")
            if notification.status not in RETRYABLE_NOTIFICATION_STATUSES:
                raise InvalidTransitionError(
                    f"Cannot retry a {notification.status} notification"
                )

            failed = [
                r
                for r in records.latest_per_channel(notification_id)
                if r.status == DeliveryStatus.FAILED and r.channel.is_active
            ]
            if not failed:
                logger.info(
                    "Nothing to retry",
                    extra={"notification_id": str(notification_id)},
                )
                return NotificationView.from_model(
                    notification, records.list_for_notification(notification_id)
                )

            if not notifications.transition(
                notification_id,
                NotificationStatus.DISPATCHING,
                from_statuses=RETRYABLE_NOTIFICATION_STATUSES,
            ):
                raise InvalidTransitionError(
                    f"Cannot retry a {notification.status} notification"
                )
            pending = []
            for previous in failed:
                record = records.create(
                    DeliveryRecord(
                        notification_id=notification_id,
                        channel_id=previous.channel_id,
                        status=DeliveryStatus.RETRYING,
                        error_message=previous.error_message,
                        retry_count=previous.retry_count + 1,
                    )
                )
                pending.append(
                    PendingDelivery(record.id, DispatchTarget.from_channel(previous.channel))
                )
            payload = payload_for(notification)
            session.commit()

        logger.info(
            "Retrying failed deliveries",
            extra={"notification_id": str(notification_id), "targets": len(pending)},
        )
        self._orchestrator.run_round(notification_id, pending, payload)
        return self.get_notification(notification_id)


class ChannelService:
    """Manage a user's notification channels."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        registry: HandlerRegistry,
    ) -> None:
        self._session_factory = session_factory
        self._registry = registry

    def create_channel(self, owner_id: UUID, request: CreateChannelRequest) -> ChannelView:
        """Validate and store a channel.

        Raises NotFoundError for an unknown owner, AddressValidationError
        for a malformed address (or a kind without a handler) and
        ConflictError for a duplicate (owner, kind, address).
        """
        with self._session_factory() as session:
            if not UserRepository(session).exists(owner_id):
                raise NotFoundError(f"User {owner_id} not found")
            if not self._registry.validate_address(request.kind, request.address):
                raise AddressValidationError(
                    f"Invalid address for channel kind {request.kind}"
                )

            channels = ChannelRepository(session)
            if channels.find(owner_id, request.kind, request.address) is not None:
                raise ConflictError(
                    f"A {request.kind} channel with this address already exists"
                )

            metadata = {
                **(self._registry.metadata_for(request.kind, request.address) or {}),
                **request.metadata,
            }
            try:
                channel = channels.create(
                    Channel(
                        owner_id=owner_id,
                        kind=request.kind,
                        address=request.address,
                        is_active=request.is_active,
                        channel_metadata=metadata,
                    )
                )
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError(
                    f"A {request.kind} channel with this address already exists"
                ) from exc

            logger.info(
                "Channel created",
                extra={"channel_id": str(channel.id), "kind": str(request.kind)},
            )
            return ChannelView.from_model(channel)

    def list_channels(self, owner_id: UUID) -> list[ChannelView]:
        with self._session_factory() as session:
            return [
                ChannelView.from_model(c)
                for c in ChannelRepository(session).list_for_owner(owner_id)
            ]

    def update_channel(
        self, owner_id: UUID, channel_id: UUID, request: UpdateChannelRequest
    ) -> ChannelView:
        with self._session_factory() as session:
            channels = ChannelRepository(session)
            if channels.get_for_owner(channel_id, owner_id) is None:
                raise NotFoundError(f"Channel {channel_id} not found")

            channel = channels.update(
                channel_id,
                is_active=request.is_active,
                is_verified=request.is_verified,
                metadata=request.metadata,
            )
            session.commit()
            return ChannelView.from_model(channel)

    def delete_channel(self, owner_id: UUID, channel_id: UUID) -> None:
        """Soft delete: the channel is deactivated, history is kept."""
        with self._session_factory() as session:
            channels = ChannelRepository(session)
            if channels.get_for_owner(channel_id, owner_id) is None:
                raise NotFoundError(f"Channel {channel_id} not found")
            channels.update(channel_id, is_active=False)
            session.commit()
        logger.info("Channel deactivated", extra={"channel_id": str(channel_id)})

    def test_channel(self, owner_id: UUID, channel_id: UUID) -> ChannelTestResult:
        with self._session_factory() as session:
            channel = ChannelRepository(session).get_for_owner(channel_id, owner_id)
            if channel is None:
                raise NotFoundError(f"Channel {channel_id} not found")
            kind, address = channel.kind, channel.address

        handler = self._registry.get(kind)
        if handler is None:
            return ChannelTestResult(
                success=False,
                message=f"No handler configured for channel kind: {kind}",
            )

        try:
            success = bool(handler.test_connection(address))
        except Exception:
            logger.exception(
                "Channel test raised", extra={"channel_id": str(channel_id), "kind": kind}
            )
            success = False

        return ChannelTestResult(
            success=success,
            message="Channel test successful" if success else "Channel test failed",
        )
