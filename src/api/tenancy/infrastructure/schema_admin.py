"""PostgreSQL implementation of ISchemaAdmin.

Runs tenant DDL over the administrative engine. Identifiers cannot be
bound as parameters, so every schema and role name is validated against
the allow-list and double-quoted before it reaches a statement. Catalog
lookups use bound parameters.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from tenancy.domain.exceptions import (
    InvalidIdentifierError,
    ProvisioningError,
    ResourceExistsError,
)
from tenancy.domain.identifiers import (
    IDENTIFIER_PATTERN,
    quote_identifier,
    validate_identifier,
    validate_prefix,
)
from tenancy.infrastructure.observability import (
    DefaultSchemaAdminProbe,
    SchemaAdminProbe,
)
from tenancy.ports.schema_admin import ISchemaAdmin, RoleInfo

# Characters allowed inside a PASSWORD '...' literal. Quotes and
# backslashes are excluded.
PASSWORD_LITERAL_PATTERN = re.compile(r"^[A-Za-z0-9!@#$%^&*()_+\-=\[\]{}|;:,.<>?]{16,128}$")

_ROLE_EXISTS = text("SELECT 1 FROM pg_catalog.pg_roles WHERE rolname = :name")
_SCHEMA_EXISTS = text(
    "SELECT 1 FROM information_schema.schemata WHERE schema_name = :name"
)
_LIST_SCHEMAS = text(
    "SELECT schema_name FROM information_schema.schemata "
    "WHERE schema_name LIKE :pattern ESCAPE '\\' ORDER BY schema_name"
)
_LIST_ROLES = text(
    "SELECT rolname, rolcanlogin FROM pg_catalog.pg_roles "
    "WHERE rolname LIKE :pattern ESCAPE '\\' ORDER BY rolname"
)
_LIST_USER_SCHEMAS = text(
    "SELECT schema_name FROM information_schema.schemata "
    "WHERE schema_name NOT LIKE 'pg\\_%' ESCAPE '\\' "
    "AND schema_name <> 'information_schema' "
    "ORDER BY schema_name"
)


def _like_prefix(prefix: str) -> str:
    """Build a LIKE pattern matching ``<prefix>_`` literally."""
    return validate_prefix(prefix).replace("_", "\\_") + "\\_%"


def _password_literal(password: str) -> str:
    if not PASSWORD_LITERAL_PATTERN.fullmatch(password):
        raise InvalidIdentifierError("Role password contains unsupported characters")
    return f"'{password}'"


class PostgresSchemaAdmin(ISchemaAdmin):
    """Engine-level DDL for tenant roles and schemas.

    Each public method runs in its own transaction on the admin engine,
    issuing one statement per execute call.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        password_generator: Callable[[], str],
        reassign_owned_to: str,
        default_schema: str = "public",
        probe: SchemaAdminProbe | None = None,
    ) -> None:
        """Initialize PostgresSchemaAdmin.

        Args:
            engine: Administrative engine with CREATEROLE privileges
            password_generator: Returns a fresh role password
            reassign_owned_to: Role inheriting objects of dropped tenant roles
            default_schema: Schema appended to every tenant search path
            probe: Optional domain probe for observability
        """
        self._engine = engine
        self._generate_password = password_generator
        self._reassign_owned_to = validate_identifier(reassign_owned_to)
        self._default_schema = validate_identifier(default_schema)
        self._probe = probe or DefaultSchemaAdminProbe()

    async def _execute(
        self,
        operation: str,
        statements: Sequence[str],
        *,
        schema_name: str | None = None,
        role_name: str | None = None,
    ) -> None:
        # exec_driver_sql keeps password literals from being parsed for
        # bind parameters.
        try:
            async with self._engine.begin() as conn:
                for statement in statements:
                    await conn.exec_driver_sql(statement)
        except SQLAlchemyError as e:
            self._probe.ddl_failed(operation, schema_name or role_name or "", e)
            if "already exists" in str(e):
                raise ResourceExistsError(
                    f"{operation} failed: {schema_name or role_name} already exists"
                ) from e
            raise ProvisioningError(
                f"{operation} failed: {e}",
                schema_name=schema_name,
                role_name=role_name,
            ) from e

    async def _fetch_exists(self, query, name: str) -> bool:
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(query, {"name": name})
                return result.first() is not None
        except SQLAlchemyError as e:
            self._probe.ddl_failed("catalog_lookup", name, e)
            raise ProvisioningError(f"Catalog lookup for {name} failed: {e}") from e

    async def create_tenant_role(self, role_name: str) -> str:
        """Create a role with login disabled and return its password.

        Raises:
            ResourceExistsError: If the role already exists
            ProvisioningError: If the engine rejected the statement
        """
        role = quote_identifier(role_name)
        if await self.role_exists(role_name):
            raise ResourceExistsError(f"Role {role_name} already exists")

        password = self._generate_password()
        await self._execute(
            "create_role",
            [
                f"CREATE ROLE {role} WITH PASSWORD {_password_literal(password)} "
                "NOSUPERUSER NOCREATEDB NOCREATEROLE NOINHERIT NOLOGIN "
                "NOREPLICATION NOBYPASSRLS"
            ],
            role_name=role_name,
        )
        self._probe.role_created(role_name)
        return password

    async def enable_role_login(self, role_name: str) -> None:
        """Allow a previously created role to log in."""
        role = quote_identifier(role_name)
        await self._execute(
            "enable_login", [f"ALTER ROLE {role} WITH LOGIN"], role_name=role_name
        )
        self._probe.role_login_enabled(role_name)

    async def set_role_password(self, role_name: str, password: str | None = None) -> str:
        """Assign a password to the role and return it.

        A fresh password is generated unless one is given.
        """
        role = quote_identifier(role_name)
        password = password if password is not None else self._generate_password()
        await self._execute(
            "set_password",
            [f"ALTER ROLE {role} WITH PASSWORD {_password_literal(password)}"],
            role_name=role_name,
        )
        self._probe.role_password_changed(role_name)
        return password

    async def create_schema(self, schema_name: str, owner_role: str) -> None:
        """Create a schema owned by the role, with default privileges.

        Raises:
            ResourceExistsError: If the schema already exists
            ProvisioningError: If the engine rejected a statement
        """
        schema = quote_identifier(schema_name)
        owner = quote_identifier(owner_role)
        await self._execute(
            "create_schema",
            [
                f"CREATE SCHEMA {schema} AUTHORIZATION {owner}",
                f"GRANT ALL ON SCHEMA {schema} TO {owner}",
                f"ALTER DEFAULT PRIVILEGES FOR ROLE {owner} IN SCHEMA {schema} "
                f"GRANT ALL ON TABLES TO {owner}",
                f"ALTER DEFAULT PRIVILEGES FOR ROLE {owner} IN SCHEMA {schema} "
                f"GRANT ALL ON SEQUENCES TO {owner}",
                f"ALTER DEFAULT PRIVILEGES FOR ROLE {owner} IN SCHEMA {schema} "
                f"GRANT ALL ON FUNCTIONS TO {owner}",
            ],
            schema_name=schema_name,
            role_name=owner_role,
        )
        self._probe.schema_created(schema_name, owner_role)

    async def grant_schema_access(self, schema_name: str, role_name: str) -> None:
        """Grant full access to the schema and pin the role's search path."""
        schema = quote_identifier(schema_name)
        role = quote_identifier(role_name)
        default = quote_identifier(self._default_schema)
        await self._execute(
            "grant_access",
            [
                f"GRANT USAGE ON SCHEMA {schema} TO {role}",
                f"GRANT ALL PRIVILEGES ON ALL TABLES IN SCHEMA {schema} TO {role}",
                f"GRANT ALL PRIVILEGES ON ALL SEQUENCES IN SCHEMA {schema} TO {role}",
                f"GRANT EXECUTE ON ALL FUNCTIONS IN SCHEMA {schema} TO {role}",
                f"ALTER ROLE {role} SET search_path TO {schema}, {default}",
            ],
            schema_name=schema_name,
            role_name=role_name,
        )
        self._probe.schema_access_granted(schema_name, role_name)

    async def revoke_all_except(
        self, role_name: str, keep_schemas: Sequence[str]
    ) -> list[str]:
        """Strip the role's privileges on every schema not kept.

        Schemas whose names fall outside the identifier allow-list are
        never granted to tenant roles and are left untouched.

        Returns:
            The schemas privileges were revoked from
        """
        role = quote_identifier(role_name)
        keep = {validate_identifier(name) for name in keep_schemas}

        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(_LIST_USER_SCHEMAS)
                schemas = [row[0] for row in result]
        except SQLAlchemyError as e:
            self._probe.ddl_failed("list_schemas", role_name, e)
            raise ProvisioningError(
                f"Listing schemas failed: {e}", role_name=role_name
            ) from e

        targets = [
            name
            for name in schemas
            if name not in keep and IDENTIFIER_PATTERN.fullmatch(name)
        ]
        statements: list[str] = []
        for name in targets:
            schema = quote_identifier(name)
            statements.extend(
                [
                    f"REVOKE ALL PRIVILEGES ON ALL TABLES IN SCHEMA {schema} FROM {role}",
                    f"REVOKE ALL PRIVILEGES ON ALL SEQUENCES IN SCHEMA {schema} FROM {role}",
                    f"REVOKE ALL PRIVILEGES ON ALL FUNCTIONS IN SCHEMA {schema} FROM {role}",
                    f"REVOKE ALL ON SCHEMA {schema} FROM {role}",
                ]
            )

        if statements:
            await self._execute("revoke_privileges", statements, role_name=role_name)
        self._probe.privileges_revoked(role_name, targets)
        return targets

    async def drop_schema(self, schema_name: str) -> None:
        """Drop the schema and everything in it. Missing schemas are ignored."""
        schema = quote_identifier(schema_name)
        await self._execute(
            "drop_schema",
            [f"DROP SCHEMA IF EXISTS {schema} CASCADE"],
            schema_name=schema_name,
        )
        self._probe.schema_dropped(schema_name)

    async def drop_role(self, role_name: str) -> None:
        """Reassign and drop everything the role owns, then drop it.

        Missing roles are ignored.
        """
        role = quote_identifier(role_name)
        if not await self.role_exists(role_name):
            return

        target = quote_identifier(self._reassign_owned_to)
        await self._execute(
            "drop_role",
            [
                f"REASSIGN OWNED BY {role} TO {target}",
                f"DROP OWNED BY {role}",
                f"DROP ROLE IF EXISTS {role}",
            ],
            role_name=role_name,
        )
        self._probe.role_dropped(role_name)

    async def role_exists(self, role_name: str) -> bool:
        """Whether the role exists in the engine."""
        return await self._fetch_exists(_ROLE_EXISTS, validate_identifier(role_name))

    async def schema_exists(self, schema_name: str) -> bool:
        """Whether the schema exists in the engine."""
        return await self._fetch_exists(_SCHEMA_EXISTS, validate_identifier(schema_name))

    async def list_tenant_schemas(self, prefix: str) -> list[str]:
        """List schemas whose names start with ``<prefix>_``."""
        async with self._engine.connect() as conn:
            result = await conn.execute(_LIST_SCHEMAS, {"pattern": _like_prefix(prefix)})
            return [row[0] for row in result]

    async def list_tenant_roles(self, prefix: str) -> list[RoleInfo]:
        """List roles whose names start with ``<prefix>_``."""
        async with self._engine.connect() as conn:
            result = await conn.execute(_LIST_ROLES, {"pattern": _like_prefix(prefix)})
            return [RoleInfo(name=row[0], can_login=bool(row[1])) for row in result]
