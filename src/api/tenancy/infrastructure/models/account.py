"""SQLAlchemy ORM model for the accounts table."""

from sqlalchemy import Boolean, String
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class AccountModel(Base, TimestampMixin):
    """ORM model for control-plane accounts.

    Identifiers are stored lowercased and are unique.
    """

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    secret_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    roles: Mapped[list[str]] = mapped_column(ARRAY(String(50)), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<AccountModel(id={self.id}, identifier={self.identifier})>"
