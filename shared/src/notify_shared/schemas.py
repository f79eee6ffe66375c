"""Request and response models exchanged with the transport layer."""

import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from notify_shared.db.models import Channel, DeliveryRecord, Notification
from notify_shared.enums import (
    ChannelKind,
    DeliveryStatus,
    NotificationCategory,
    NotificationStatus,
)


SECRET_KEYS = frozenset({"secret", "token", "api_key", "password"})


def redact(metadata: dict[str, Any] | None) -> dict[str, Any]:
    """Mask credential-like metadata values before they leave the service."""
    return {
        key: "***" if key in SECRET_KEYS else value
        for key, value in (metadata or {}).items()
    }


class CreateNotificationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    category: NotificationCategory
    recipient_id: UUID
    channels: list[ChannelKind] | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    @field_validator("channels")
    @classmethod
    def _dedupe_channels(
        cls, value: list[ChannelKind] | None
    ) -> list[ChannelKind] | None:
        if value is None:
            return None
        return list(dict.fromkeys(value))


class ListNotificationsQuery(BaseModel):
    status: NotificationStatus | None = None
    category: NotificationCategory | None = None


class CreateChannelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: ChannelKind
    address: str = Field(min_length=1)
    is_active: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("address")
    @classmethod
    def _strip_address(cls, value: str) -> str:
        return value.strip()


class UpdateChannelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_active: bool | None = None
    is_verified: bool | None = None
    metadata: dict[str, Any] | None = None


class DeliveryView(BaseModel):
    id: UUID
    channel_id: UUID
    channel_kind: ChannelKind
    channel_address: str
    status: DeliveryStatus
    provider_message_id: str | None = None
    sent_at: datetime.datetime | None = None
    delivered_at: datetime.datetime | None = None
    failed_at: datetime.datetime | None = None
    error_message: str | None = None
    retry_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: DeliveryRecord) -> "DeliveryView":
        return cls(
            id=record.id,
            channel_id=record.channel_id,
            channel_kind=record.channel.kind,
            channel_address=record.channel.address,
            status=record.status,
            provider_message_id=record.provider_message_id,
            sent_at=record.sent_at,
            delivered_at=record.delivered_at,
            failed_at=record.failed_at,
            error_message=record.error_message,
            retry_count=record.retry_count,
            metadata=record.result_metadata,
        )


class NotificationView(BaseModel):
    id: UUID
    title: str
    message: str
    category: NotificationCategory
    status: NotificationStatus
    context: dict[str, Any] = Field(default_factory=dict)
    sender_id: UUID
    recipient_id: UUID
    created_at: datetime.datetime
    updated_at: datetime.datetime
    deliveries: list[DeliveryView] = Field(default_factory=list)

    @classmethod
    def from_model(
        cls,
        notification: Notification,
        deliveries: list[DeliveryRecord] | None = None,
    ) -> "NotificationView":
        records = notification.deliveries if deliveries is None else deliveries
        return cls(
            id=notification.id,
            title=notification.title,
            message=notification.body,
            category=notification.category,
            status=notification.status,
            context=notification.context,
            sender_id=notification.sender_id,
            recipient_id=notification.recipient_id,
            created_at=notification.created_at,
            updated_at=notification.updated_at,
            deliveries=[DeliveryView.from_record(r) for r in records],
        )


class ChannelView(BaseModel):
    id: UUID
    kind: ChannelKind
    address: str
    is_active: bool
    is_verified: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @classmethod
    def from_model(cls, channel: Channel) -> "ChannelView":
        return cls(
            id=channel.id,
            kind=channel.kind,
            address=channel.address,
            is_active=channel.is_active,
            is_verified=channel.is_verified,
            metadata=redact(channel.channel_metadata),
            created_at=channel.created_at,
            updated_at=channel.updated_at,
        )


class ChannelTestResult(BaseModel):
    success: bool
    message: str
