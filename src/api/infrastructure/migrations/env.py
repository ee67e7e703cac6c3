"""Alembic environment for the control-plane database.

Reads connection settings from DatabaseSettings and runs migrations
over the async engine.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from infrastructure.database.engines import build_async_url
from infrastructure.database.models import Base
from infrastructure.settings import get_database_settings

# Register control-plane models on Base.metadata
import tenancy.infrastructure.models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    settings = get_database_settings()
    return build_async_url(
        host=settings.host,
        port=settings.port,
        database=settings.database,
        username=settings.username,
        password=settings.password.get_secret_value(),
    )


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations over an async engine with no pooling."""
    engine = create_async_engine(_database_url(), poolclass=pool.NullPool)

    async with engine.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await engine.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
