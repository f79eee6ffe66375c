"""SMS handler backed by the Twilio REST API."""

import logging
import re
from typing import Any

import httpx

from notify_shared.enums import ChannelKind

from dispatcher.config import TwilioConfig
from dispatcher.handlers.base import (
    ChannelHandler,
    DeliveryOutcome,
    NotificationPayload,
    Stopwatch,
)

logger = logging.getLogger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")

# Twilio concatenates long messages up to this many characters.
MAX_SMS_LENGTH = 1600


class SMSHandler(ChannelHandler):
    kind = ChannelKind.SMS
    name = "Twilio SMS"

    def __init__(self, config: TwilioConfig, http_client: httpx.Client) -> None:
        self._config = config
        self._http = http_client

    @property
    def configured(self) -> bool:
        return bool(
            self._config.account_sid
            and self._config.auth_token
            and self._config.from_number
        )

    def validate_address(self, address: str) -> bool:
        return bool(E164_PATTERN.match(address))

    def metadata_for(self, address: str) -> dict[str, Any]:
        return {"provider": "twilio", "kind": "sms", "last4": address[-4:]}

    def send(
        self,
        address: str,
        payload: NotificationPayload,
        metadata: dict[str, Any] | None = None,
    ) -> DeliveryOutcome:
        if not self.validate_address(address):
            return DeliveryOutcome.failed(
                "Invalid phone number, expected E.164", provider="twilio"
            )
        if not self.configured:
            return DeliveryOutcome.failed(
                "Twilio credentials not configured", provider="twilio"
            )

        text = f"{payload.title}: {payload.body}"[:MAX_SMS_LENGTH]
        watch = Stopwatch()
        try:
            response = self._http.post(
                self._account_url("/Messages.json"),
                data={"To": address, "From": self._config.from_number, "Body": text},
                auth=(self._config.account_sid, self._config.auth_token),
                timeout=self._config.timeout_seconds,
            )
            body = response.json()
        except httpx.HTTPError as exc:
            return DeliveryOutcome.failed(
                f"Twilio request failed: {exc}",
                provider="twilio",
                response_time_ms=watch.elapsed_ms,
            )
        except ValueError:
            body = {}

        result_meta = {
            "provider": "twilio",
            "status_code": response.status_code,
            "response_time_ms": watch.elapsed_ms,
        }
        if not response.is_success:
            error = body.get("message") or f"Twilio API error: {response.status_code}"
            logger.error("SMS rejected", extra={**result_meta, "error": error})
            return DeliveryOutcome.failed(error, **result_meta)

        logger.info("SMS sent", extra=result_meta)
        return DeliveryOutcome.sent(
            body.get("sid"), twilio_status=body.get("status"), **result_meta
        )

    def test_connection(self, address: str) -> bool:
        if not self.configured:
            return False
        try:
            response = self._http.get(
                self._account_url(".json"),
                auth=(self._config.account_sid, self._config.auth_token),
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError:
            return False
        return response.is_success

    def _account_url(self, suffix: str) -> str:
        return (
            f"{self._config.base_url}/2010-04-01/Accounts/"
            f"{self._config.account_sid}{suffix}"
        )
