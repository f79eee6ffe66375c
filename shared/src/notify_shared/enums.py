from enum import StrEnum


class NotificationCategory(StrEnum):
    ANNOUNCEMENT = "announcement"
    ASSIGNMENT = "assignment"
    GRADE = "grade"
    REMINDER = "reminder"
    SYSTEM = "system"


class NotificationStatus(StrEnum):
    CREATED = "created"
    DISPATCHING = "dispatching"
    SENT = "sent"
    FAILED = "failed"
    READ = "read"


TERMINAL_NOTIFICATION_STATUSES: frozenset[str] = frozenset(
    {NotificationStatus.FAILED, NotificationStatus.READ}
)


class ChannelKind(StrEnum):
    EMAIL = "email"
    PUSH = "push"
    WEBHOOK = "webhook"
    SMS = "sms"
    SLACK = "slack"
    DISCORD = "discord"
    TELEGRAM = "telegram"


class DeliveryStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    RETRYING = "retrying"


TERMINAL_DELIVERY_STATUSES: frozenset[str] = frozenset(
    {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}
)

SUCCESSFUL_DELIVERY_STATUSES: frozenset[str] = frozenset(
    {DeliveryStatus.SENT, DeliveryStatus.DELIVERED}
)


class UserRole(StrEnum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class AggregationPolicy(StrEnum):
    ANY_SUCCESS = "any_success"
    ALL_SUCCESS = "all_success"
