"""Handler registry for channel-kind based delivery dispatch."""

import logging
from typing import Any

import httpx

from notify_shared.enums import ChannelKind

from dispatcher.config import HandlerConfig
from dispatcher.handlers.base import ChannelHandler
from dispatcher.handlers.chat import DiscordHandler, SlackHandler, TelegramHandler
from dispatcher.handlers.email import EmailHandler
from dispatcher.handlers.push import PushHandler
from dispatcher.handlers.sms import SMSHandler
from dispatcher.handlers.webhook import WebhookHandler

logger = logging.getLogger(__name__)

# Syntactically valid stand-in addresses used for health probes.
PROBE_ADDRESSES: dict[ChannelKind, str] = {
    ChannelKind.EMAIL: "test@example.com",
    ChannelKind.PUSH: "probe_" + "x" * 152,
    ChannelKind.WEBHOOK: "https://example.com/webhook",
    ChannelKind.SMS: "+15005550006",
    ChannelKind.SLACK: "https://hooks.slack.com/services/T000/B000/XXXX",
    ChannelKind.DISCORD: "https://discord.com/api/webhooks/0/probe",
    ChannelKind.TELEGRAM: "@probe_chat",
}


class HandlerRegistry:
    """Maps channel kinds to handler instances.

    At most one handler per kind; registering again replaces the previous
    one.
    """

    def __init__(self) -> None:
        self._handlers: dict[ChannelKind, ChannelHandler] = {}

    def register(self, handler: ChannelHandler) -> None:
        if handler.kind in self._handlers:
            logger.info("Replacing channel handler", extra={"kind": str(handler.kind)})
        self._handlers[handler.kind] = handler

    def get(self, kind: ChannelKind | str) -> ChannelHandler | None:
        """Return the handler for *kind*, or None if none is registered."""
        try:
            handler = self._handlers.get(ChannelKind(kind))
        except ValueError:
            handler = None
        if handler is None:
            logger.warning("No handler registered", extra={"kind": str(kind)})
        return handler

    def available_kinds(self) -> list[ChannelKind]:
        return list(self._handlers)

    def validate_address(self, kind: ChannelKind | str, address: str) -> bool:
        """False when no handler exists for *kind*."""
        handler = self.get(kind)
        return handler is not None and handler.validate_address(address)

    def metadata_for(self, kind: ChannelKind | str, address: str) -> dict[str, Any] | None:
        handler = self.get(kind)
        if handler is None:
            return None
        return handler.metadata_for(address)

    def test_all(self) -> dict[ChannelKind, bool]:
        """Run each handler's connection test against a probe address.

        A handler that raises is reported unhealthy.
        """
        results: dict[ChannelKind, bool] = {}
        for kind, handler in self._handlers.items():
            try:
                healthy = bool(handler.test_connection(PROBE_ADDRESSES.get(kind, "")))
            except Exception:
                logger.exception("Handler health check failed", extra={"kind": str(kind)})
                healthy = False
            results[kind] = healthy
        return results


def create_http_client() -> httpx.Client:
    """Shared client for all HTTP-backed handlers; per-request timeouts apply."""
    return httpx.Client(follow_redirects=False)


def create_default_registry(
    config: HandlerConfig | None = None,
    http_client: httpx.Client | None = None,
) -> HandlerRegistry:
    """Create a registry with all built-in handlers."""
    config = config or HandlerConfig()
    http_client = http_client or create_http_client()

    registry = HandlerRegistry()
    registry.register(
        EmailHandler(config.email, http_client, sendgrid=config.sendgrid, smtp=config.smtp)
    )
    registry.register(PushHandler(config.fcm, http_client))
    registry.register(WebhookHandler(config.webhook, http_client))
    registry.register(SMSHandler(config.twilio, http_client))
    registry.register(SlackHandler(config.webhook, http_client))
    registry.register(DiscordHandler(config.webhook, http_client))
    registry.register(TelegramHandler(config.telegram, http_client))
    return registry
