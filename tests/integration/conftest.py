"""Integration test fixtures using testcontainers.

Session-scoped containers for PostgreSQL and Redis. The gateway runs in a
background thread against the real services; outbound provider HTTP goes
through an httpx mock transport so delivery outcomes are scriptable.
"""

import os
import threading
import uuid
from collections.abc import Callable, Generator
from pathlib import Path
from urllib.parse import urlparse

import httpx
import pytest
from celery import Celery
from sqlalchemy import Engine, text
from sqlalchemy.orm import Session, sessionmaker
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer
from werkzeug.serving import make_server

from notify_shared.db.base import create_db_engine, create_session_factory
from notify_shared.db.models import User
from notify_shared.enums import UserRole

from dispatcher.config import DispatchConfig, HandlerConfig
from dispatcher.handlers import HandlerRegistry, create_default_registry
from dispatcher.orchestrator import DispatchOrchestrator
from dispatcher.service import ChannelService, NotificationService

pytestmark = pytest.mark.integration

HEALTHY_HOST = "hooks.school.test"
BROKEN_HOST = "broken.school.test"

# ---------------------------------------------------------------------------
# Containers (session-scoped)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    with PostgresContainer("postgres:16-alpine", driver="psycopg2") as pg:
        yield pg


@pytest.fixture(scope="session")
def redis_container() -> Generator[RedisContainer, None, None]:
    with RedisContainer("redis:7-alpine") as redis_c:
        yield redis_c


@pytest.fixture(scope="session")
def pg_dsn(postgres_container: PostgresContainer) -> str:
    return postgres_container.get_connection_url()


@pytest.fixture(scope="session")
def redis_url(redis_container: RedisContainer) -> str:
    host = redis_container.get_container_host_ip()
    port = int(redis_container.get_exposed_port(6379))
    return f"redis://{host}:{port}/0"


# ---------------------------------------------------------------------------
# Environment variables (session-scoped, autouse)
# Pydantic-settings configs read these automatically.
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session", autouse=True)
def _set_env_vars(pg_dsn: str, redis_url: str) -> Generator[None, None, None]:
    parsed = urlparse(pg_dsn)
    overrides = {
        "POSTGRES_HOST": parsed.hostname or "localhost",
        "POSTGRES_PORT": str(parsed.port or 5432),
        "POSTGRES_DATABASE": (parsed.path or "/test").lstrip("/"),
        "POSTGRES_USER": parsed.username or "test",
        "POSTGRES_PASSWORD": parsed.password or "test",
        "CELERY_BROKER_URL": redis_url,
        "EMAIL_PROVIDER": "console",
    }

    saved: dict[str, str | None] = {}
    for key, value in overrides.items():
        saved[key] = os.environ.get(key)
        os.environ[key] = value

    yield

    for key, old in saved.items():
        if old is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = old


# ---------------------------------------------------------------------------
# Database (session-scoped)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def db_engine(pg_dsn: str, _set_env_vars: None) -> Generator[Engine, None, None]:
    """Create engine and run Alembic migrations against testcontainer PG."""
    from alembic import command
    from alembic.config import Config as AlembicConfig

    engine = create_db_engine(pg_dsn, pool_pre_ping=True)

    shared_dir = Path(__file__).resolve().parents[2] / "shared"
    alembic_cfg = AlembicConfig(str(shared_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(shared_dir / "alembic"))
    command.upgrade(alembic_cfg, "head")

    yield engine
    engine.dispose()


@pytest.fixture(scope="session")
def session_factory(db_engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(db_engine)


@pytest.fixture(autouse=True)
def _cleanup_db(session_factory: sessionmaker[Session]) -> Generator[None, None, None]:
    """Truncate all tables after each test."""
    yield
    with session_factory() as session:
        session.execute(
            text(
                "TRUNCATE delivery_records, notification_channels, "
                "notifications, users CASCADE"
            )
        )
        session.commit()


@pytest.fixture()
def make_user(session_factory: sessionmaker[Session]) -> Callable[..., User]:
    def _make(role: UserRole) -> User:
        suffix = uuid.uuid4().hex[:8]
        with session_factory() as session:
            user = User(email=f"{role}-{suffix}@school.test", name=suffix, role=role)
            session.add(user)
            session.commit()
            return user

    return _make


# ---------------------------------------------------------------------------
# Provider HTTP (function-scoped)
# ---------------------------------------------------------------------------


class ProviderStub:
    """Answers webhook calls; the broken host fails until ``repair()``."""

    def __init__(self) -> None:
        self.broken = True
        self.requests: list[httpx.Request] = []

    def repair(self) -> None:
        self.broken = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == BROKEN_HOST and self.broken:
            return httpx.Response(500, text="upstream down")
        return httpx.Response(200, headers={"X-Request-Id": uuid.uuid4().hex})


@pytest.fixture()
def provider() -> ProviderStub:
    return ProviderStub()


@pytest.fixture()
def registry(provider: ProviderStub) -> Generator[HandlerRegistry, None, None]:
    client = httpx.Client(transport=httpx.MockTransport(provider))
    yield create_default_registry(HandlerConfig(), client)
    client.close()


@pytest.fixture()
def notification_service(
    session_factory: sessionmaker[Session], registry: HandlerRegistry
) -> NotificationService:
    orchestrator = DispatchOrchestrator(session_factory, registry, DispatchConfig())
    return NotificationService(session_factory, orchestrator)


# ---------------------------------------------------------------------------
# Dispatcher worker (function-scoped)
# ---------------------------------------------------------------------------


@pytest.fixture()
def dispatcher_worker(
    notification_service: NotificationService,
) -> Generator[None, None, None]:
    """Patch dispatcher.celery.app.conf with test resources.

    This allows calling retry_notification() directly in tests without
    running a real Celery worker process.
    """
    from dispatcher.celery import app as dispatcher_app

    dispatcher_app.conf.update(_notification_service=notification_service)
    yield
    dispatcher_app.conf.update(_notification_service=None)


# ---------------------------------------------------------------------------
# API Gateway (function-scoped)
# ---------------------------------------------------------------------------


@pytest.fixture()
def gateway_url(
    session_factory: sessionmaker[Session],
    registry: HandlerRegistry,
    notification_service: NotificationService,
    redis_url: str,
) -> Generator[str, None, None]:
    """Start the Flask gateway in a background thread, yield base URL."""
    from api_gateway.app import create_app
    from api_gateway.health import HealthChecker
    from api_gateway.retry import RetryPublisher

    app = create_app(
        notification_service,
        ChannelService(session_factory, registry),
        HealthChecker(session_factory, registry),
        RetryPublisher(Celery("api_gateway", broker=redis_url)),
    )
    app.config["TESTING"] = True

    server = make_server("127.0.0.1", 0, app, threaded=True)
    port = server.server_address[1]

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield f"http://127.0.0.1:{port}"

    server.shutdown()


@pytest.fixture()
def http_client(gateway_url: str) -> Generator[httpx.Client, None, None]:
    with httpx.Client(base_url=gateway_url, timeout=10.0) as client:
        yield client
