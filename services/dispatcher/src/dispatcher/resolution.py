"""Turns a recipient's channels plus an optional kind filter into send targets."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from notify_shared.db.models import Channel
from notify_shared.enums import ChannelKind


@dataclass(frozen=True, slots=True)
class DispatchTarget:
    """One (channel, kind, address) to send to in a dispatch round."""

    channel_id: UUID
    kind: ChannelKind
    address: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_channel(cls, channel: Channel) -> "DispatchTarget":
        return cls(
            channel_id=channel.id,
            kind=ChannelKind(channel.kind),
            address=channel.address,
            metadata=dict(channel.channel_metadata or {}),
        )


def resolve_targets(
    channels: Iterable[Channel],
    requested_kinds: Iterable[ChannelKind | str] | None = None,
) -> list[DispatchTarget]:
    """Pick the active channels to target, preserving input order.

    With no *requested_kinds* every active channel is a target, so two
    active email addresses mean two sends. An empty result is valid.
    """
    wanted = None if requested_kinds is None else {str(k) for k in requested_kinds}
    return [
        DispatchTarget.from_channel(channel)
        for channel in channels
        if channel.is_active and (wanted is None or channel.kind in wanted)
    ]
