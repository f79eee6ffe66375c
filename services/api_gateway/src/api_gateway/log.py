"""Logging setup for the gateway (delegates to notify_shared)."""

from notify_shared.log import setup_logging as _setup


def setup_logging(level: str = "INFO") -> None:
    _setup(level, service="api_gateway", suppress=["werkzeug"])
