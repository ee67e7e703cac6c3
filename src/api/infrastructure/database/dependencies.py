"""Database engine and session singletons.

Provides the control-plane session factory and the administrative engine,
each with its own connection pool, created lazily on first use.
"""

from __future__ import annotations

import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from infrastructure.database.engines import (
    create_admin_engine,
    create_control_plane_engine,
)
from infrastructure.observability import DefaultConnectionProbe
from infrastructure.settings import (
    get_admin_database_settings,
    get_database_settings,
)

# Module-level probe for observability
_probe = DefaultConnectionProbe()

# Module-level engine instances (created on first use)
_control_plane_engine: AsyncEngine | None = None
_admin_engine: AsyncEngine | None = None

# Module-level sessionmaker (created with the control-plane engine)
_control_plane_sessionmaker: async_sessionmaker[AsyncSession] | None = None

# Thread lock for safe engine initialization
_engine_lock = threading.Lock()


def get_control_plane_engine() -> AsyncEngine:
    """Get the control-plane database engine (singleton).

    Creates engine on first call and caches for subsequent calls.
    Uses double-check locking for thread-safe initialization.
    Also creates and caches the sessionmaker for efficient session creation.

    Returns:
        Configured async engine for tenant metadata
    """
    global _control_plane_engine, _control_plane_sessionmaker
    if _control_plane_engine is None:
        with _engine_lock:
            # Double-check after acquiring lock
            if _control_plane_engine is None:
                settings = get_database_settings()
                _control_plane_engine = create_control_plane_engine(settings)
                _control_plane_sessionmaker = async_sessionmaker(
                    _control_plane_engine,
                    expire_on_commit=False,
                    class_=AsyncSession,
                )
                _probe.engine_created(
                    kind="control_plane",
                    host=settings.host,
                    database=settings.database,
                    pool_size=settings.pool_max_connections,
                )
    return _control_plane_engine


def get_control_plane_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the control-plane sessionmaker, creating the engine if needed."""
    get_control_plane_engine()
    assert _control_plane_sessionmaker is not None
    return _control_plane_sessionmaker


def get_admin_engine() -> AsyncEngine:
    """Get the administrative DDL engine (singleton).

    Returns:
        Configured async engine logged in as the privileged role
    """
    global _admin_engine
    if _admin_engine is None:
        with _engine_lock:
            if _admin_engine is None:
                settings = get_database_settings()
                admin_settings = get_admin_database_settings()
                _admin_engine = create_admin_engine(settings, admin_settings)
                _probe.engine_created(
                    kind="admin",
                    host=settings.host,
                    database=settings.database,
                    pool_size=admin_settings.pool_size,
                )
    return _admin_engine


@asynccontextmanager
async def control_plane_session() -> AsyncIterator[AsyncSession]:
    """Provide a control-plane session.

    The session is configured to NOT auto-commit. Callers must explicitly
    manage transactions using `async with session.begin()`.

    Yields:
        AsyncSession for database operations
    """
    async with get_control_plane_sessionmaker()() as session:
        yield session


async def close_database_connections() -> None:
    """Close the control-plane and administrative engines.

    Should be called on application shutdown to properly cleanup connections.
    Also resets the sessionmaker to allow reinitialization.
    """
    global _control_plane_engine, _admin_engine, _control_plane_sessionmaker

    if _control_plane_engine is not None:
        await _control_plane_engine.dispose()
        _probe.engine_disposed(kind="control_plane")
        _control_plane_engine = None
        _control_plane_sessionmaker = None

    if _admin_engine is not None:
        await _admin_engine.dispose()
        _probe.engine_disposed(kind="admin")
        _admin_engine = None
