"""create control plane tables

Revision ID: 3f1a9c2b7d10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3f1a9c2b7d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=26), nullable=False),  # ULID
        sa.Column("identifier", sa.String(length=255), nullable=False),
        sa.Column("secret_hash", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("roles", postgresql.ARRAY(sa.String(length=50)), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_accounts"),
        sa.UniqueConstraint("identifier", name="uq_accounts_identifier"),
    )

    op.create_table(
        "tenants",
        sa.Column("id", sa.String(length=26), nullable=False),  # ULID
        sa.Column("display_name", sa.String(length=200), nullable=False),
        sa.Column("display_name_key", sa.String(length=200), nullable=False),
        sa.Column("owner_id", sa.String(length=26), nullable=False),
        sa.Column("schema_name", sa.String(length=63), nullable=False),
        sa.Column("database_user", sa.String(length=63), nullable=False),
        sa.Column("encrypted_secret", sa.Text(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_tenants"),
        # Case-insensitive name uniqueness; the repository maps violations
        # of this constraint by name
        sa.UniqueConstraint("display_name_key", name="uq_tenants_display_name_key"),
        sa.UniqueConstraint("schema_name", name="uq_tenants_schema_name"),
        sa.UniqueConstraint("database_user", name="uq_tenants_database_user"),
    )
    op.create_index("ix_tenants_owner_id", "tenants", ["owner_id"])

    # Append-only ledger: rows are never deleted, so names are never reused
    op.create_table(
        "provisioned_identifiers",
        sa.Column("name", sa.String(length=63), nullable=False),
        sa.Column("kind", sa.String(length=10), nullable=False),
        sa.Column("tenant_id", sa.String(length=26), nullable=False),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("name", name="pk_provisioned_identifiers"),
        sa.CheckConstraint(
            "kind IN ('schema', 'role')", name="ck_provisioned_identifiers_kind"
        ),
    )
    op.create_index(
        "ix_provisioned_identifiers_tenant_id",
        "provisioned_identifiers",
        ["tenant_id"],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(
        "ix_provisioned_identifiers_tenant_id", table_name="provisioned_identifiers"
    )
    op.drop_table("provisioned_identifiers")
    op.drop_index("ix_tenants_owner_id", table_name="tenants")
    op.drop_table("tenants")
    op.drop_table("accounts")
