"""Email channel handler with console, SendGrid and SMTP backends."""

import logging
import re
import smtplib
import uuid
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any

import httpx

from notify_shared.enums import ChannelKind

from dispatcher.config import EmailConfig, SendGridConfig, SmtpConfig
from dispatcher.handlers.base import (
    ChannelHandler,
    DeliveryOutcome,
    NotificationPayload,
    Stopwatch,
)
from dispatcher.renderer import render_email_html

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

CONSOLE = "console"
SENDGRID = "sendgrid"
SMTP = "smtp"
SUPPORTED_PROVIDERS = frozenset({CONSOLE, SENDGRID, SMTP})


class EmailHandler(ChannelHandler):
    kind = ChannelKind.EMAIL
    name = "Email"

    def __init__(
        self,
        config: EmailConfig,
        http_client: httpx.Client,
        sendgrid: SendGridConfig | None = None,
        smtp: SmtpConfig | None = None,
    ) -> None:
        self._config = config
        self._http = http_client
        self._sendgrid = sendgrid or SendGridConfig()
        self._smtp = smtp or SmtpConfig()

        provider = config.provider.lower()
        if provider not in SUPPORTED_PROVIDERS:
            logger.warning(
                "Unknown email provider, falling back to console",
                extra={"provider": config.provider},
            )
            provider = CONSOLE
        self.provider = provider

    def validate_address(self, address: str) -> bool:
        return bool(EMAIL_PATTERN.match(address))

    def metadata_for(self, address: str) -> dict[str, Any]:
        domain = address.split("@", 1)[1] if "@" in address else None
        return {"provider": self.provider, "domain": domain, "kind": "email"}

    def send(
        self,
        address: str,
        payload: NotificationPayload,
        metadata: dict[str, Any] | None = None,
    ) -> DeliveryOutcome:
        if not self.validate_address(address):
            return DeliveryOutcome.failed(
                "Invalid email address format", provider=self.provider
            )

        watch = Stopwatch()
        try:
            if self.provider == SENDGRID:
                outcome = self._send_via_sendgrid(address, payload, watch)
            elif self.provider == SMTP:
                outcome = self._send_via_smtp(address, payload, watch)
            else:
                outcome = self._send_via_console(address, payload, watch)
        except (httpx.HTTPError, smtplib.SMTPException, OSError) as exc:
            outcome = DeliveryOutcome.failed(
                f"{self.provider} error: {exc}",
                provider=self.provider,
                response_time_ms=watch.elapsed_ms,
            )

        log_extra = {
            "provider": self.provider,
            "domain": self.metadata_for(address)["domain"],
            "response_time_ms": watch.elapsed_ms,
        }
        if outcome.success:
            logger.info("Email sent", extra=log_extra)
        else:
            logger.error("Email send failed", extra={**log_extra, "error": outcome.error})
        return outcome

    def test_connection(self, address: str) -> bool:
        if self.provider == CONSOLE:
            return True
        if self.provider == SMTP:
            return bool(self._smtp.host and self._smtp.port)
        if not self._sendgrid.api_key:
            return False
        try:
            response = self._http.get(
                f"{self._sendgrid.base_url}/v3/user/profile",
                headers=self._sendgrid_headers(),
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError:
            logger.exception("SendGrid connection test failed")
            return False
        return response.is_success

    def _send_via_console(
        self, address: str, payload: NotificationPayload, watch: Stopwatch
    ) -> DeliveryOutcome:
        logger.info(
            "Email (console sink)",
            extra={
                "from": self._config.default_from,
                "to": address,
                "subject": payload.title,
                "body": payload.body,
                "category": payload.category,
                "context": payload.context,
            },
        )
        return DeliveryOutcome.sent(
            f"console-{uuid.uuid4().hex}",
            confirmed=True,
            provider=CONSOLE,
            response_time_ms=watch.elapsed_ms,
        )

    def _send_via_sendgrid(
        self, address: str, payload: NotificationPayload, watch: Stopwatch
    ) -> DeliveryOutcome:
        if not self._sendgrid.api_key:
            return DeliveryOutcome.failed(
                "SendGrid API key not configured", provider=SENDGRID
            )

        body = {
            "personalizations": [
                {"to": [{"email": address}], "subject": payload.title}
            ],
            "from": {"email": self._config.default_from},
            "content": [
                {"type": "text/plain", "value": payload.body},
                {"type": "text/html", "value": self._html(payload)},
            ],
            "categories": [payload.category],
        }
        response = self._http.post(
            f"{self._sendgrid.base_url}/v3/mail/send",
            json=body,
            headers=self._sendgrid_headers(),
            timeout=self._config.timeout_seconds,
        )
        if not response.is_success:
            return DeliveryOutcome.failed(
                f"SendGrid API error: {response.status_code} - {response.text[:300]}",
                provider=SENDGRID,
                status_code=response.status_code,
                response_time_ms=watch.elapsed_ms,
            )
        return DeliveryOutcome.sent(
            response.headers.get("X-Message-Id"),
            provider=SENDGRID,
            status_code=response.status_code,
            response_time_ms=watch.elapsed_ms,
        )

    def _send_via_smtp(
        self, address: str, payload: NotificationPayload, watch: Stopwatch
    ) -> DeliveryOutcome:
        if not (self._smtp.host and self._smtp.port):
            return DeliveryOutcome.failed(
                "SMTP configuration incomplete", provider=SMTP
            )

        message = EmailMessage()
        message["From"] = self._config.default_from
        message["To"] = address
        message["Subject"] = payload.title
        message["Message-ID"] = make_msgid()
        message.set_content(payload.body)
        message.add_alternative(self._html(payload), subtype="html")

        with smtplib.SMTP(
            self._smtp.host, self._smtp.port, timeout=self._config.timeout_seconds
        ) as client:
            if self._smtp.use_tls:
                client.starttls()
            if self._smtp.username:
                client.login(self._smtp.username, self._smtp.password)
            refused = client.send_message(message)

        if refused:
            return DeliveryOutcome.failed(
                f"SMTP recipient refused: {sorted(refused)}",
                provider=SMTP,
                response_time_ms=watch.elapsed_ms,
            )
        return DeliveryOutcome.sent(
            message["Message-ID"],
            provider=SMTP,
            host=self._smtp.host,
            response_time_ms=watch.elapsed_ms,
        )

    def _sendgrid_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._sendgrid.api_key}"}

    @staticmethod
    def _html(payload: NotificationPayload) -> str:
        return render_email_html(
            payload.title, payload.body, payload.category, payload.context
        )
