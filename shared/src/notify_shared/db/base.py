"""Declarative base plus engine and session factories."""

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def create_db_engine(dsn: str, **kwargs: object) -> Engine:
    """Create an engine from a DSN.

    Pass ``pool_pre_ping=True`` for long-running processes. SQLite engines
    get foreign-key enforcement switched on so tests see the same
    constraints as PostgreSQL.
    """
    engine = create_engine(dsn, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a sessionmaker bound to *engine*.

    ``expire_on_commit=False`` keeps loaded rows usable after the session
    closes; dispatch results are serialized after their transaction ends.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


def _enable_sqlite_foreign_keys(dbapi_connection: object, _record: object) -> None:
    cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
