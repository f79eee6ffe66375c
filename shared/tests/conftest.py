"""Shared test fixtures for database tests (SQLite in-memory)."""

import uuid
from collections.abc import Callable, Generator

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from notify_shared.db.base import Base, create_db_engine
from notify_shared.db.models import User
from notify_shared.enums import UserRole


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
def make_user(db_session: Session) -> Callable[..., User]:
    def _make(role: UserRole = UserRole.STUDENT, **overrides: object) -> User:
        suffix = uuid.uuid4().hex[:8]
        fields: dict = {
            "email": f"user-{suffix}@example.com",
            "name": f"User {suffix}",
            "role": role,
        }
        fields.update(overrides)
        user = User(**fields)
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
