"""Test fixtures for dispatcher tests."""

import uuid
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from notify_shared.db.base import Base, create_db_engine
from notify_shared.db.models import Channel, User
from notify_shared.enums import ChannelKind, UserRole

from dispatcher.config import DispatchConfig
from dispatcher.handlers import HandlerRegistry
from dispatcher.handlers.base import ChannelHandler, DeliveryOutcome, NotificationPayload
from dispatcher.orchestrator import DispatchOrchestrator
from dispatcher.service import ChannelService, NotificationService


class FakeHandler(ChannelHandler):
    """Scripted handler: returns ``outcome`` or raises ``error``."""

    def __init__(
        self,
        kind: ChannelKind,
        outcome: DeliveryOutcome | None = None,
        error: Exception | None = None,
        healthy: bool = True,
    ) -> None:
        self.kind = kind
        self.name = f"fake-{kind}"
        self.outcome = outcome or DeliveryOutcome.sent(f"{kind}-msg", provider="fake")
        self.error = error
        self.healthy = healthy
        self.sent: list[tuple[str, NotificationPayload]] = []

    def validate_address(self, address: str) -> bool:
        return "invalid" not in address

    def send(
        self,
        address: str,
        payload: NotificationPayload,
        metadata: dict[str, Any] | None = None,
    ) -> DeliveryOutcome:
        self.sent.append((address, payload))
        if self.error is not None:
            raise self.error
        return self.outcome

    def test_connection(self, address: str) -> bool:
        if self.error is not None:
            raise self.error
        return self.healthy

    def metadata_for(self, address: str) -> dict[str, Any]:
        return {"provider": self.name}


@pytest.fixture(scope="session")
def db_engine() -> Engine:
    """Create a single in-memory SQLite engine for the test session."""
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(db_engine: Engine) -> Generator[Session, None, None]:
    """Transactional session that rolls back after each test."""
    connection = db_engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection)

    yield session

    session.close()
    if transaction.is_active:
        transaction.rollback()
    connection.close()


@pytest.fixture()
def session_factory(db_session: Session) -> MagicMock:
    """Session factory that always returns the test session.

    Wraps db_session so that ``with session_factory() as session:``
    returns our transactional test session.
    """
    factory = MagicMock(spec=sessionmaker)
    ctx = MagicMock()
    ctx.__enter__ = MagicMock(return_value=db_session)
    ctx.__exit__ = MagicMock(return_value=False)
    factory.return_value = ctx
    return factory


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def _make(role: UserRole = UserRole.STUDENT) -> User:
        suffix = uuid.uuid4().hex[:8]
        user = User(email=f"user-{suffix}@example.com", name=f"User {suffix}", role=role)
        db_session.add(user)
        db_session.flush()
        return user

    return _make


@pytest.fixture()
def teacher(make_user: Callable[..., User]) -> User:
    return make_user(UserRole.TEACHER)


@pytest.fixture()
def student(make_user: Callable[..., User]) -> User:
    return make_user(UserRole.STUDENT)


@pytest.fixture()
def add_channel(db_session: Session) -> Callable[..., Channel]:
    def _add(owner: User, kind: ChannelKind, address: str, **overrides: Any) -> Channel:
        channel = Channel(owner_id=owner.id, kind=kind, address=address, **overrides)
        db_session.add(channel)
        db_session.flush()
        return channel

    return _add


@pytest.fixture()
def make_handler() -> Callable[..., FakeHandler]:
    return FakeHandler


@pytest.fixture()
def email_handler() -> FakeHandler:
    return FakeHandler(ChannelKind.EMAIL)


@pytest.fixture()
def push_handler() -> FakeHandler:
    return FakeHandler(ChannelKind.PUSH)


@pytest.fixture()
def registry(email_handler: FakeHandler, push_handler: FakeHandler) -> HandlerRegistry:
    """Registry with fake email and push handlers only."""
    registry = HandlerRegistry()
    registry.register(email_handler)
    registry.register(push_handler)
    return registry


@pytest.fixture()
def dispatch_config() -> DispatchConfig:
    return DispatchConfig(parallel=False)


@pytest.fixture()
def orchestrator(
    session_factory: MagicMock,
    registry: HandlerRegistry,
    dispatch_config: DispatchConfig,
) -> DispatchOrchestrator:
    return DispatchOrchestrator(session_factory, registry, dispatch_config)


@pytest.fixture()
def notification_service(
    session_factory: MagicMock, orchestrator: DispatchOrchestrator
) -> NotificationService:
    return NotificationService(session_factory, orchestrator)


@pytest.fixture()
def channel_service(
    session_factory: MagicMock, registry: HandlerRegistry
) -> ChannelService:
    return ChannelService(session_factory, registry)
