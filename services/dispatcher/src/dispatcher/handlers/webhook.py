"""Generic HTTP webhook handler with optional HMAC-SHA256 signing."""

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from notify_shared.enums import ChannelKind

from dispatcher.config import WebhookConfig
from dispatcher.handlers.base import (
    ChannelHandler,
    DeliveryOutcome,
    NotificationPayload,
    Stopwatch,
)

logger = logging.getLogger(__name__)


def parse_http_url(address: str) -> httpx.URL | None:
    """Return the parsed URL if *address* is an absolute http(s) URL."""
    try:
        url = httpx.URL(address)
    except (httpx.InvalidURL, TypeError):
        return None
    if url.scheme not in ("http", "https") or not url.host:
        return None
    return url


def sign_payload(secret: str, timestamp: str, body: str) -> str:
    """HMAC-SHA256 over ``"{timestamp}.{body}"``, hex encoded."""
    return hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{body}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class WebhookHandler(ChannelHandler):
    kind = ChannelKind.WEBHOOK
    name = "Webhook"

    def __init__(self, config: WebhookConfig, http_client: httpx.Client) -> None:
        self._config = config
        self._http = http_client

    def validate_address(self, address: str) -> bool:
        return parse_http_url(address) is not None

    def metadata_for(self, address: str) -> dict[str, Any]:
        url = parse_http_url(address)
        return {
            "provider": "webhook",
            "kind": "webhook",
            "host": url.host if url else None,
            "scheme": url.scheme if url else None,
        }

    def send(
        self,
        address: str,
        payload: NotificationPayload,
        metadata: dict[str, Any] | None = None,
    ) -> DeliveryOutcome:
        if not self.validate_address(address):
            return DeliveryOutcome.failed("Invalid webhook URL", provider="webhook")

        metadata = metadata or {}
        timestamp = datetime.now(timezone.utc).isoformat()
        body = json.dumps(
            {
                "title": payload.title,
                "body": payload.body,
                "category": payload.category,
                "context": payload.context,
                "timestamp": timestamp,
            },
            default=str,
        )
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._config.user_agent,
            **{str(k): str(v) for k, v in (metadata.get("headers") or {}).items()},
        }
        secret = metadata.get("secret")
        if secret:
            signature = sign_payload(str(secret), timestamp, body)
            headers[self._config.signature_header] = f"t={timestamp},v1={signature}"

        watch = Stopwatch()
        try:
            response = self._http.post(
                address,
                content=body,
                headers=headers,
                timeout=self._config.timeout_seconds,
            )
        except httpx.TimeoutException:
            return DeliveryOutcome.failed(
                f"Webhook timed out after {self._config.timeout_seconds}s",
                provider="webhook",
                response_time_ms=watch.elapsed_ms,
            )
        except httpx.HTTPError as exc:
            return DeliveryOutcome.failed(
                f"Webhook request failed: {exc}",
                provider="webhook",
                response_time_ms=watch.elapsed_ms,
            )

        result_meta = {
            "provider": "webhook",
            "status_code": response.status_code,
            "response_time_ms": watch.elapsed_ms,
        }
        if not response.is_success:
            logger.error("Webhook rejected", extra=result_meta)
            return DeliveryOutcome.failed(
                f"Webhook returned HTTP {response.status_code}", **result_meta
            )

        logger.info("Webhook delivered", extra=result_meta)
        return DeliveryOutcome.sent(response.headers.get("X-Request-Id"), **result_meta)

    def test_connection(self, address: str) -> bool:
        if not self.validate_address(address):
            return False
        try:
            response = self._http.head(address, timeout=self._config.timeout_seconds)
        except httpx.HTTPError:
            return False
        # Endpoints commonly reject HEAD; anything short of a server error
        # proves the host is reachable.
        return response.status_code < 500
