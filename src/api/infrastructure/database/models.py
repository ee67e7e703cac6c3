"""SQLAlchemy declarative base and shared model utilities.

Only control-plane tables are mapped here. Tenant-local tables live in
per-tenant schemas and are managed with explicit DDL instead.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Deterministic constraint names keep alembic revisions stable.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def _utc_now() -> datetime:
    """Generate UTC timestamp for database defaults.

    Uses a named function instead of lambda for SQLAlchemy 2.0 compatibility.
    """
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all control-plane ORM models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TimestampMixin:
    """Mixin providing created_at and updated_at timestamp columns.

    Uses timezone-aware UTC timestamps with Python-side default generation.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=_utc_now,  # Evaluated at INSERT time
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=_utc_now,
        onupdate=_utc_now,  # Evaluated at UPDATE time
        nullable=False,
    )
