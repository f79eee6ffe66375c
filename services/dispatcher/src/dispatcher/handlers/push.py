"""Push notification handler backed by Firebase Cloud Messaging."""

import logging
import re
from typing import Any

import httpx

from notify_shared.enums import ChannelKind

from dispatcher.config import FcmConfig
from dispatcher.handlers.base import (
    ChannelHandler,
    DeliveryOutcome,
    NotificationPayload,
    Stopwatch,
)

logger = logging.getLogger(__name__)

# Registration tokens are long opaque strings.
FCM_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9:_-]{140,}$")


class PushHandler(ChannelHandler):
    kind = ChannelKind.PUSH
    name = "Firebase Cloud Messaging"

    def __init__(self, config: FcmConfig, http_client: httpx.Client) -> None:
        self._config = config
        self._http = http_client

    def validate_address(self, address: str) -> bool:
        return bool(FCM_TOKEN_PATTERN.match(address))

    def metadata_for(self, address: str) -> dict[str, Any]:
        return {
            "provider": "fcm",
            "token_length": len(address),
            "kind": "push_notification",
            "project_id": self._config.project_id,
        }

    def send(
        self,
        address: str,
        payload: NotificationPayload,
        metadata: dict[str, Any] | None = None,
    ) -> DeliveryOutcome:
        if not self.validate_address(address):
            return DeliveryOutcome.failed("Invalid FCM token format", provider="fcm")
        if not self._config.server_key:
            return DeliveryOutcome.failed(
                "FCM server key not configured", provider="fcm"
            )
        return self._post(address, self._build_message(address, payload))

    def test_connection(self, address: str) -> bool:
        if not self._config.server_key:
            return False
        probe = NotificationPayload(
            title="Test Notification",
            body="This is a test notification to verify FCM connectivity",
            category="system",
        )
        message = self._build_message(address, probe)
        message["dry_run"] = True
        return self._post(address, message).success

    def _build_message(
        self, address: str, payload: NotificationPayload
    ) -> dict[str, Any]:
        # Channel metadata stays server-side; only the notification context ships.
        data = {"category": payload.category, **payload.context}
        return {
            "to": address,
            "notification": {
                "title": payload.title,
                "body": payload.body,
                "sound": "default",
            },
            # FCM data values must be strings.
            "data": {str(k): str(v) for k, v in data.items()},
            "priority": "high",
            "android": {"priority": "high"},
            "apns": {"payload": {"aps": {"sound": "default", "category": payload.category}}},
        }

    def _post(self, address: str, message: dict[str, Any]) -> DeliveryOutcome:
        watch = Stopwatch()
        try:
            response = self._http.post(
                self._config.endpoint,
                json=message,
                headers={"Authorization": f"key={self._config.server_key}"},
                timeout=self._config.timeout_seconds,
            )
            body = response.json()
        except httpx.HTTPError as exc:
            logger.error(
                "FCM request failed",
                extra={"error": str(exc), "response_time_ms": watch.elapsed_ms},
            )
            return DeliveryOutcome.failed(
                f"FCM request failed: {exc}",
                provider="fcm",
                response_time_ms=watch.elapsed_ms,
            )
        except ValueError:
            return DeliveryOutcome.failed(
                f"FCM returned a non-JSON response ({response.status_code})",
                provider="fcm",
                status_code=response.status_code,
                response_time_ms=watch.elapsed_ms,
            )

        results = body.get("results") or [{}]
        result_meta = {
            "provider": "fcm",
            "response_time_ms": watch.elapsed_ms,
            "success": body.get("success"),
            "failure": body.get("failure"),
        }
        if response.is_success and body.get("success") == 1:
            logger.info("Push sent", extra=result_meta)
            return DeliveryOutcome.sent(results[0].get("message_id"), **result_meta)

        error = results[0].get("error") or "FCM API error"
        logger.error("Push failed", extra={**result_meta, "error": error})
        return DeliveryOutcome.failed(error, **result_meta)
