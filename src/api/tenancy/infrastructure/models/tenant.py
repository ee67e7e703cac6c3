"""SQLAlchemy ORM model for the tenants table.

One row per tenant. The schema and role named here are real engine
resources; the row is written only after both exist.
"""

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class TenantModel(Base, TimestampMixin):
    """ORM model for tenants table.

    display_name_key holds the casefolded display name and carries the
    unique constraint that makes names unique ignoring case.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    display_name_key: Mapped[str] = mapped_column(
        String(200), nullable=False, unique=True
    )
    owner_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    schema_name: Mapped[str] = mapped_column(String(63), nullable=False, unique=True)
    database_user: Mapped[str] = mapped_column(String(63), nullable=False, unique=True)
    encrypted_secret: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<TenantModel(id={self.id}, schema_name={self.schema_name})>"
