"""Channel handler contract shared by every channel kind."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from notify_shared.enums import ChannelKind, DeliveryStatus


@dataclass(frozen=True, slots=True)
class NotificationPayload:
    """What gets delivered: the notification content plus free-form context."""

    title: str
    body: str
    category: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    """Result of one send attempt through one channel."""

    success: bool
    status: DeliveryStatus
    message_id: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def sent(
        cls,
        message_id: str | None = None,
        *,
        confirmed: bool = False,
        **metadata: Any,
    ) -> "DeliveryOutcome":
        """Success. ``confirmed`` means the provider reported final delivery."""
        status = DeliveryStatus.DELIVERED if confirmed else DeliveryStatus.SENT
        return cls(
            success=True, status=status, message_id=message_id, metadata=metadata
        )

    @classmethod
    def failed(cls, error: str, **metadata: Any) -> "DeliveryOutcome":
        return cls(
            success=False,
            status=DeliveryStatus.FAILED,
            error=error,
            metadata=metadata,
        )


class ChannelHandler(ABC):
    """Validate/send/test triad for exactly one channel kind.

    ``send`` must not raise for expected failures (bad credentials,
    unreachable endpoint, rejected address); those come back as a failed
    DeliveryOutcome. Anything that does escape is converted by the
    orchestrator.
    """

    kind: ChannelKind
    name: str

    @abstractmethod
    def validate_address(self, address: str) -> bool:
        """Pure syntactic check of *address* for this kind."""

    @abstractmethod
    def send(
        self,
        address: str,
        payload: NotificationPayload,
        metadata: dict[str, Any] | None = None,
    ) -> DeliveryOutcome:
        """Attempt one delivery."""

    @abstractmethod
    def test_connection(self, address: str) -> bool:
        """Best-effort liveness / configuration check."""

    @abstractmethod
    def metadata_for(self, address: str) -> dict[str, Any]:
        """Non-secret descriptive metadata derived from *address*."""


class Stopwatch:
    """Measures provider response time in whole milliseconds."""

    def __init__(self) -> None:
        self._start = time.monotonic()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)
