"""Port for engine-level DDL against the administrative connection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable


@dataclass(frozen=True)
class RoleInfo:
    """Catalog facts about a database role."""

    name: str
    can_login: bool


@runtime_checkable
class ISchemaAdmin(Protocol):
    """Creates and tears down tenant roles and schemas.

    Every name passed in is validated against the identifier allow-list
    before it is interpolated into DDL.
    """

    async def create_tenant_role(self, role_name: str) -> str:
        """Create a role with login disabled and return its password."""
        ...

    async def enable_role_login(self, role_name: str) -> None:
        """Allow a previously created role to log in."""
        ...

    async def create_schema(self, schema_name: str, owner_role: str) -> None:
        """Create a schema owned by the role, with default privileges."""
        ...

    async def grant_schema_access(self, schema_name: str, role_name: str) -> None:
        """Grant full access to the schema and pin the role's search path."""
        ...

    async def revoke_all_except(
        self, role_name: str, keep_schemas: Sequence[str]
    ) -> list[str]:
        """Strip the role's privileges on every schema not kept.

        Returns:
            The schemas privileges were revoked from
        """
        ...

    async def set_role_password(
        self, role_name: str, password: str | None = None
    ) -> str:
        """Assign a password (fresh unless given) to the role and return it."""
        ...

    async def drop_schema(self, schema_name: str) -> None:
        """Drop the schema and everything in it."""
        ...

    async def drop_role(self, role_name: str) -> None:
        """Reassign and drop everything the role owns, then drop it."""
        ...

    async def role_exists(self, role_name: str) -> bool:
        """Whether the role exists in the engine."""
        ...

    async def schema_exists(self, schema_name: str) -> bool:
        """Whether the schema exists in the engine."""
        ...

    async def list_tenant_schemas(self, prefix: str) -> list[str]:
        """List schemas whose names start with ``<prefix>_``."""
        ...

    async def list_tenant_roles(self, prefix: str) -> list[RoleInfo]:
        """List roles whose names start with ``<prefix>_``."""
        ...
