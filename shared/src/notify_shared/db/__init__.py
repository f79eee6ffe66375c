"""Persistence collaborator: models, repositories, engine/session utilities."""

from notify_shared.db.base import Base, create_db_engine, create_session_factory
from notify_shared.db.models import Channel, DeliveryRecord, Notification, User
from notify_shared.db.repositories import (
    ChannelRepository,
    DeliveryRecordRepository,
    NotificationRepository,
    UserRepository,
)

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "Channel",
    "DeliveryRecord",
    "Notification",
    "User",
    "ChannelRepository",
    "DeliveryRecordRepository",
    "NotificationRepository",
    "UserRepository",
]
