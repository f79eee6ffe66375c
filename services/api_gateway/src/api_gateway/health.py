import logging
import time
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from dispatcher.handlers import HandlerRegistry

logger = logging.getLogger(__name__)


class HealthChecker:
    """Database round-trip plus a connection test per channel handler."""

    def __init__(
        self, session_factory: sessionmaker[Session], registry: HandlerRegistry
    ) -> None:
        self._session_factory = session_factory
        self._registry = registry

    def check_database(self) -> dict[str, Any]:
        started = time.monotonic()
        try:
            with self._session_factory() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.error("Database health check failed", extra={"error": str(exc)})
            return {"healthy": False, "error": str(exc)}
        return {
            "healthy": True,
            "response_time_ms": int((time.monotonic() - started) * 1000),
        }

    def check(self) -> dict[str, Any]:
        """Healthy when the database answers and at least one handler works."""
        database = self.check_database()
        handlers = {str(k): ok for k, ok in self._registry.test_all().items()}
        healthy = database["healthy"] and any(handlers.values())
        return {
            "status": "healthy" if healthy else "unhealthy",
            "checks": {"database": database, "handlers": handlers},
        }
