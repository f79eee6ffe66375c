"""Chat integrations: Slack and Discord incoming webhooks, Telegram bots."""

import logging
import re
from abc import abstractmethod
from typing import Any

import httpx

from notify_shared.enums import ChannelKind

from dispatcher.config import TelegramConfig, WebhookConfig
from dispatcher.handlers.base import (
    ChannelHandler,
    DeliveryOutcome,
    NotificationPayload,
    Stopwatch,
)
from dispatcher.handlers.webhook import parse_http_url

logger = logging.getLogger(__name__)


class ChatWebhookHandler(ChannelHandler):
    """Posts a formatted message to a chat service's incoming-webhook URL.

    Subclasses pin the accepted hosts/paths and shape the JSON body.
    """

    provider: str
    allowed_hosts: frozenset[str]
    path_prefix: str = "/"

    def __init__(self, config: WebhookConfig, http_client: httpx.Client) -> None:
        self._config = config
        self._http = http_client

    def validate_address(self, address: str) -> bool:
        url = parse_http_url(address)
        return (
            url is not None
            and url.scheme == "https"
            and url.host in self.allowed_hosts
            and url.path.startswith(self.path_prefix)
        )

    def metadata_for(self, address: str) -> dict[str, Any]:
        url = parse_http_url(address)
        return {
            "provider": self.provider,
            "kind": str(self.kind),
            "host": url.host if url else None,
        }

    @abstractmethod
    def build_body(self, payload: NotificationPayload) -> dict[str, Any]:
        """JSON body for the incoming-webhook POST."""

    def send(
        self,
        address: str,
        payload: NotificationPayload,
        metadata: dict[str, Any] | None = None,
    ) -> DeliveryOutcome:
        if not self.validate_address(address):
            return DeliveryOutcome.failed(
                f"Invalid {self.name} webhook URL", provider=self.provider
            )

        watch = Stopwatch()
        try:
            response = self._http.post(
                address,
                json=self.build_body(payload),
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            return DeliveryOutcome.failed(
                f"{self.name} request failed: {exc}",
                provider=self.provider,
                response_time_ms=watch.elapsed_ms,
            )

        result_meta = {
            "provider": self.provider,
            "status_code": response.status_code,
            "response_time_ms": watch.elapsed_ms,
        }
        if not response.is_success:
            error = f"{self.name} API error: {response.status_code} - {response.text[:300]}"
            logger.error("Chat message rejected", extra={**result_meta, "error": error})
            return DeliveryOutcome.failed(error, **result_meta)

        logger.info("Chat message sent", extra=result_meta)
        return DeliveryOutcome.sent(None, **result_meta)


class SlackHandler(ChatWebhookHandler):
    kind = ChannelKind.SLACK
    name = "Slack"
    provider = "slack"
    allowed_hosts = frozenset({"hooks.slack.com"})
    path_prefix = "/services/"

    def build_body(self, payload: NotificationPayload) -> dict[str, Any]:
        fields = [
            {"type": "mrkdwn", "text": f"*{key}*\n{value}"}
            for key, value in sorted(payload.context.items())
        ]
        blocks: list[dict[str, Any]] = [
            {"type": "header", "text": {"type": "plain_text", "text": payload.title}},
            {"type": "section", "text": {"type": "mrkdwn", "text": payload.body}},
        ]
        if fields:
            # Slack caps a section at ten fields.
            blocks.append({"type": "section", "fields": fields[:10]})
        blocks.append(
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Category: {payload.category}"}],
            }
        )
        return {"text": f"{payload.title}: {payload.body}", "blocks": blocks}

    def test_connection(self, address: str) -> bool:
        # Slack webhooks have no side-effect-free probe.
        return self.validate_address(address)


class DiscordHandler(ChatWebhookHandler):
    kind = ChannelKind.DISCORD
    name = "Discord"
    provider = "discord"
    allowed_hosts = frozenset({"discord.com", "discordapp.com"})
    path_prefix = "/api/webhooks/"

    def build_body(self, payload: NotificationPayload) -> dict[str, Any]:
        embed: dict[str, Any] = {
            "title": payload.title[:256],
            "description": payload.body[:4096],
            "footer": {"text": f"Category: {payload.category}"},
        }
        if payload.context:
            embed["fields"] = [
                {"name": str(key), "value": str(value)[:1024], "inline": True}
                for key, value in sorted(payload.context.items())
            ][:25]
        return {"embeds": [embed]}

    def test_connection(self, address: str) -> bool:
        if not self.validate_address(address):
            return False
        try:
            response = self._http.get(address, timeout=self._config.timeout_seconds)
        except httpx.HTTPError:
            return False
        return response.is_success


TELEGRAM_CHAT_PATTERN = re.compile(r"^(-?\d{5,}|@[A-Za-z][A-Za-z0-9_]{4,31})$")


class TelegramHandler(ChannelHandler):
    kind = ChannelKind.TELEGRAM
    name = "Telegram"

    def __init__(self, config: TelegramConfig, http_client: httpx.Client) -> None:
        self._config = config
        self._http = http_client

    def validate_address(self, address: str) -> bool:
        return bool(TELEGRAM_CHAT_PATTERN.match(address))

    def metadata_for(self, address: str) -> dict[str, Any]:
        return {
            "provider": "telegram",
            "kind": "telegram",
            "chat_type": "username" if address.startswith("@") else "id",
        }

    def send(
        self,
        address: str,
        payload: NotificationPayload,
        metadata: dict[str, Any] | None = None,
    ) -> DeliveryOutcome:
        if not self.validate_address(address):
            return DeliveryOutcome.failed(
                "Invalid Telegram chat id", provider="telegram"
            )
        if not self._config.bot_token:
            return DeliveryOutcome.failed(
                "Telegram bot token not configured", provider="telegram"
            )

        watch = Stopwatch()
        try:
            response = self._http.post(
                self._method_url("sendMessage"),
                json={
                    "chat_id": address,
                    "text": f"{payload.title}\n\n{payload.body}",
                    "disable_web_page_preview": True,
                },
                timeout=self._config.timeout_seconds,
            )
            body = response.json()
        except httpx.HTTPError as exc:
            return DeliveryOutcome.failed(
                f"Telegram request failed: {exc}",
                provider="telegram",
                response_time_ms=watch.elapsed_ms,
            )
        except ValueError:
            body = {}

        result_meta = {
            "provider": "telegram",
            "status_code": response.status_code,
            "response_time_ms": watch.elapsed_ms,
        }
        if not body.get("ok"):
            error = body.get("description") or f"Telegram API error: {response.status_code}"
            logger.error("Telegram message rejected", extra={**result_meta, "error": error})
            return DeliveryOutcome.failed(error, **result_meta)

        message_id = (body.get("result") or {}).get("message_id")
        logger.info("Telegram message sent", extra=result_meta)
        return DeliveryOutcome.sent(
            str(message_id) if message_id is not None else None, **result_meta
        )

    def test_connection(self, address: str) -> bool:
        if not self._config.bot_token:
            return False
        try:
            response = self._http.get(
                self._method_url("getMe"), timeout=self._config.timeout_seconds
            )
            return bool(response.json().get("ok"))
        except (httpx.HTTPError, ValueError):
            return False

    def _method_url(self, method: str) -> str:
        return f"{self._config.base_url}/bot{self._config.bot_token}/{method}"
