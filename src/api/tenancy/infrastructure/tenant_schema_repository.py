"""Tenant-local storage bound to exactly one schema.

Statements are always schema-qualified with the validated, quoted schema
name this repository was built for, and run on connections the broker
opened as that tenant's role. The search path is never relied on.
"""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from tenancy.domain.aggregates import TenantUser
from tenancy.domain.identifiers import quote_identifier
from tenancy.domain.value_objects import (
    TenantInfoEntry,
    TenantRole,
    TenantUserId,
)
from tenancy.ports.connections import ITenantStore

DISPLAY_NAME_INFO_KEY = "display_name"

_KNOWN_ROLES = {role.value for role in TenantRole}


def _bootstrap_statements(schema: str) -> list[str]:
    return [
        f"""
        CREATE TABLE IF NOT EXISTS {schema}.users (
            id VARCHAR(26) PRIMARY KEY,
            api_key VARCHAR(64) NOT NULL UNIQUE,
            api_secret_hash TEXT NOT NULL,
            display_name VARCHAR(200) NOT NULL DEFAULT '',
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            last_login_at TIMESTAMPTZ
        )
        """,
        f"CREATE INDEX IF NOT EXISTS ix_users_is_active ON {schema}.users (is_active)",
        f"""
        CREATE TABLE IF NOT EXISTS {schema}.user_roles (
            id BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
            user_id VARCHAR(26) NOT NULL REFERENCES {schema}.users (id) ON DELETE CASCADE,
            role VARCHAR(50) NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_user_roles_user_id_role UNIQUE (user_id, role)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {schema}.tenant_info (
            key VARCHAR(100) PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {schema}.outlets (
            id VARCHAR(26) PRIMARY KEY,
            code VARCHAR(50) NOT NULL UNIQUE,
            name VARCHAR(200) NOT NULL,
            address TEXT,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {schema}.user_outlets (
            user_id VARCHAR(26) NOT NULL REFERENCES {schema}.users (id) ON DELETE CASCADE,
            outlet_id VARCHAR(26) NOT NULL REFERENCES {schema}.outlets (id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (user_id, outlet_id)
        )
        """,
    ]


class TenantSchemaRepository(ITenantStore):
    """Repository for the tables inside one tenant schema."""

    def __init__(self, schema_name: str) -> None:
        self._schema_name = schema_name
        self._schema = quote_identifier(schema_name)

    @property
    def schema_name(self) -> str:
        """The schema every statement is qualified with."""
        return self._schema_name

    async def bootstrap(self, connection: AsyncConnection, display_name: str) -> None:
        """Create the tenant-local tables and seed the display name.

        Safe to run against a schema that was already bootstrapped.
        """
        for statement in _bootstrap_statements(self._schema):
            await connection.execute(text(statement))

        await connection.execute(
            text(
                f"INSERT INTO {self._schema}.tenant_info (key, value) "
                "VALUES (:key, :value) ON CONFLICT (key) DO NOTHING"
            ),
            {"key": DISPLAY_NAME_INFO_KEY, "value": display_name},
        )

    async def insert_user(self, connection: AsyncConnection, user: TenantUser) -> None:
        """Insert a user and its role assignments."""
        await connection.execute(
            text(
                f"INSERT INTO {self._schema}.users "
                "(id, api_key, api_secret_hash, display_name, is_active, "
                "created_at, updated_at) "
                "VALUES (:id, :api_key, :api_secret_hash, :display_name, "
                ":is_active, :created_at, :updated_at)"
            ),
            {
                "id": user.id.value,
                "api_key": user.api_key,
                "api_secret_hash": user.api_secret_hash,
                "display_name": user.display_name,
                "is_active": user.active,
                "created_at": user.created_at,
                "updated_at": user.updated_at,
            },
        )
        for role in sorted(user.roles):
            await connection.execute(
                text(
                    f"INSERT INTO {self._schema}.user_roles (user_id, role) "
                    "VALUES (:user_id, :role)"
                ),
                {"user_id": user.id.value, "role": role.value},
            )

    async def find_user_by_api_key(
        self, connection: AsyncConnection, api_key: str
    ) -> TenantUser | None:
        """Find a user by api key, with its active roles loaded."""
        result = await connection.execute(
            text(
                "SELECT id, api_key, api_secret_hash, display_name, is_active, "
                "created_at, updated_at, last_login_at "
                f"FROM {self._schema}.users WHERE api_key = :api_key"
            ),
            {"api_key": api_key},
        )
        row = result.mappings().first()
        if row is None:
            return None
        return await self._to_domain(connection, row)

    async def find_first_user_with_role(
        self, connection: AsyncConnection, role: TenantRole
    ) -> TenantUser | None:
        """Find the oldest active user holding an active role."""
        result = await connection.execute(
            text(
                "SELECT u.id, u.api_key, u.api_secret_hash, u.display_name, "
                "u.is_active, u.created_at, u.updated_at, u.last_login_at "
                f"FROM {self._schema}.users u "
                f"JOIN {self._schema}.user_roles r ON r.user_id = u.id "
                "WHERE r.role = :role AND r.is_active AND u.is_active "
                "ORDER BY u.created_at, u.id LIMIT 1"
            ),
            {"role": role.value},
        )
        row = result.mappings().first()
        if row is None:
            return None
        return await self._to_domain(connection, row)

    async def update_credentials(
        self,
        connection: AsyncConnection,
        user_id: TenantUserId,
        api_key: str,
        api_secret_hash: str,
    ) -> None:
        """Replace a user's api key and secret hash."""
        await connection.execute(
            text(
                f"UPDATE {self._schema}.users "
                "SET api_key = :api_key, api_secret_hash = :api_secret_hash, "
                "updated_at = now() WHERE id = :id"
            ),
            {"id": user_id.value, "api_key": api_key, "api_secret_hash": api_secret_hash},
        )

    async def record_login(self, connection: AsyncConnection, user_id: TenantUserId) -> None:
        """Stamp last_login_at for a user."""
        await connection.execute(
            text(f"UPDATE {self._schema}.users SET last_login_at = now() WHERE id = :id"),
            {"id": user_id.value},
        )

    async def list_info(self, connection: AsyncConnection) -> list[TenantInfoEntry]:
        """Return every info row ordered by key."""
        result = await connection.execute(
            text(f"SELECT key, value, updated_at FROM {self._schema}.tenant_info ORDER BY key")
        )
        return [
            TenantInfoEntry(key=row.key, value=row.value, updated_at=row.updated_at)
            for row in result
        ]

    async def set_info(
        self, connection: AsyncConnection, key: str, value: str
    ) -> TenantInfoEntry:
        """Insert or update an info row."""
        result = await connection.execute(
            text(
                f"INSERT INTO {self._schema}.tenant_info (key, value) "
                "VALUES (:key, :value) "
                "ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = now() "
                "RETURNING key, value, updated_at"
            ),
            {"key": key, "value": value},
        )
        row = result.one()
        return TenantInfoEntry(key=row.key, value=row.value, updated_at=row.updated_at)

    async def _load_roles(
        self, connection: AsyncConnection, user_id: str
    ) -> frozenset[TenantRole]:
        result = await connection.execute(
            text(
                f"SELECT role FROM {self._schema}.user_roles "
                "WHERE user_id = :user_id AND is_active"
            ),
            {"user_id": user_id},
        )
        return frozenset(
            TenantRole(role) for (role,) in result if role in _KNOWN_ROLES
        )

    async def _to_domain(self, connection: AsyncConnection, row) -> TenantUser:
        return TenantUser(
            id=TenantUserId(value=row["id"]),
            api_key=row["api_key"],
            api_secret_hash=row["api_secret_hash"],
            display_name=row["display_name"],
            roles=await self._load_roles(connection, row["id"]),
            active=row["is_active"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_login_at=row["last_login_at"],
        )
