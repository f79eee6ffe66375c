from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from notify_shared.enums import AggregationPolicy


class DispatchConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DISPATCH_")

    log_level: str = "INFO"
    parallel: bool = True
    max_workers: int = Field(default=8, ge=1)
    send_timeout_seconds: float = Field(default=30.0, gt=0)
    aggregation_policy: AggregationPolicy = AggregationPolicy.ANY_SUCCESS


class EmailConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="EMAIL_")

    provider: str = "console"
    default_from: str = "noreply@notification-api.com"
    timeout_seconds: float = 10.0


class SendGridConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SENDGRID_")

    api_key: str = ""
    base_url: str = "https://api.sendgrid.com"


class SmtpConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SMTP_")

    host: str = ""
    port: int | None = None
    username: str = ""
    password: str = ""
    use_tls: bool = True


class FcmConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FCM_")

    server_key: str = ""
    project_id: str = ""
    endpoint: str = "https://fcm.googleapis.com/fcm/send"
    timeout_seconds: float = 10.0


class TwilioConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TWILIO_")

    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""
    base_url: str = "https://api.twilio.com"
    timeout_seconds: float = 10.0


class TelegramConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TELEGRAM_")

    bot_token: str = ""
    base_url: str = "https://api.telegram.org"
    timeout_seconds: float = 10.0


class WebhookConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="WEBHOOK_")

    timeout_seconds: float = 10.0
    signature_header: str = "X-Notification-Signature"
    user_agent: str = "notification-dispatcher/1.0"


class HandlerConfig:
    """Bundle of per-provider settings used to build the default registry."""

    def __init__(
        self,
        email: EmailConfig | None = None,
        sendgrid: SendGridConfig | None = None,
        smtp: SmtpConfig | None = None,
        fcm: FcmConfig | None = None,
        twilio: TwilioConfig | None = None,
        telegram: TelegramConfig | None = None,
        webhook: WebhookConfig | None = None,
    ) -> None:
        self.email = email or EmailConfig()
        self.sendgrid = sendgrid or SendGridConfig()
        self.smtp = smtp or SmtpConfig()
        self.fcm = fcm or FcmConfig()
        self.twilio = twilio or TwilioConfig()
        self.telegram = telegram or TelegramConfig()
        self.webhook = webhook or WebhookConfig()
