"""Structured JSON logging shared by the dispatcher and the gateway."""

import json
import logging
import sys
from collections.abc import Sequence
from datetime import datetime, timezone

# Anything on a LogRecord outside this set came in through `extra={...}`.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
    | {"message", "asctime", "taskName"}
)

DEFAULT_SUPPRESSED = ("httpx", "httpcore", "urllib3")


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter; extra fields become top-level keys."""

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self._service:
            log_entry["service"] = self._service

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_entry[key] = value

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    *,
    service: str | None = None,
    suppress: Sequence[str] = (),
) -> None:
    """Route the root logger to stdout as JSON.

    Args:
        level: Root log level name; unknown names fall back to INFO.
        service: Optional service name stamped on every line.
        suppress: Extra logger names raised to WARNING, on top of the
                  HTTP client loggers which are always quietened.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(service))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)

    for name in (*DEFAULT_SUPPRESSED, *suppress):
        logging.getLogger(name).setLevel(logging.WARNING)
