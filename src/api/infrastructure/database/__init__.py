"""Database infrastructure - shared connection primitives."""

from infrastructure.database.dependencies import (
    close_database_connections,
    control_plane_session,
    get_admin_engine,
    get_control_plane_engine,
    get_control_plane_sessionmaker,
)

__all__ = [
    "close_database_connections",
    "control_plane_session",
    "get_admin_engine",
    "get_control_plane_engine",
    "get_control_plane_sessionmaker",
]
