"""Logging setup for the dispatcher (delegates to notify_shared)."""

from notify_shared.log import JsonFormatter, setup_logging as _setup

__all__ = ["JsonFormatter", "setup_logging"]


def setup_logging(level: str = "INFO") -> None:
    _setup(level, service="dispatcher", suppress=["celery", "kombu"])
