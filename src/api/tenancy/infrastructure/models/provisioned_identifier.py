"""SQLAlchemy ORM model for the provisioned_identifiers ledger.

Rows are inserted before any DDL runs and are never deleted, so a schema
or role name can never be handed out twice.
"""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, _utc_now


class ProvisionedIdentifierModel(Base):
    """ORM model for reserved schema and role names."""

    __tablename__ = "provisioned_identifiers"

    name: Mapped[str] = mapped_column(String(63), primary_key=True)
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    reserved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=_utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<ProvisionedIdentifierModel(name={self.name}, kind={self.kind})>"
