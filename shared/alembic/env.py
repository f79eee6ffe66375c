"""Migration environment for the notification dispatch schema.

The users, channels, notifications and delivery_records tables are described
by notify_shared.db.models; the target database comes from the POSTGRES_*
variables read by PostgresConfig, never from alembic.ini.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from notify_shared.config import PostgresConfig
from notify_shared.db import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Importing notify_shared.db registers every model on this metadata.
target_metadata = Base.metadata


def _dispatch_db_url() -> str:
    return PostgresConfig().dsn


def run_migrations_offline() -> None:
    """Emit the dispatch schema as SQL for review or manual apply."""
    context.configure(
        url=_dispatch_db_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply pending revisions to the configured PostgreSQL database."""
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _dispatch_db_url()

    engine = engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
