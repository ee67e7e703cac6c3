"""Repository protocols (ports) for the tenancy bounded context.

Repository protocols define the interface for persisting and retrieving
control-plane aggregates. Tenant-local data is reached through the
tenant store port instead, always over a tenant-scoped connection.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from tenancy.domain.aggregates import Account, TenantRecord
from tenancy.domain.value_objects import AccountId, TenantId


@runtime_checkable
class ITenantRepository(Protocol):
    """Repository for TenantRecord persistence in the control-plane store."""

    async def save(self, record: TenantRecord) -> None:
        """Insert or update a tenant record.

        Raises:
            DuplicateTenantNameError: If the display name is already taken
        """
        ...

    async def get_by_id(self, tenant_id: TenantId) -> TenantRecord | None:
        """Retrieve a tenant record by id."""
        ...

    async def get_by_display_name(self, name: str) -> TenantRecord | None:
        """Retrieve a tenant record by display name, ignoring case."""
        ...

    async def list_by_owner(self, owner_id: AccountId) -> list[TenantRecord]:
        """List tenants created by an account, oldest first."""
        ...

    async def list_all(self) -> list[TenantRecord]:
        """List every tenant record."""
        ...

    async def delete(self, tenant_id: TenantId) -> bool:
        """Delete a tenant record.

        Returns:
            True if a record was deleted
        """
        ...


@runtime_checkable
class IAccountRepository(Protocol):
    """Repository for control-plane Account persistence."""

    async def save(self, account: Account) -> None:
        """Insert or update an account.

        Raises:
            ConflictError: If the identifier is already registered
        """
        ...

    async def get_by_id(self, account_id: AccountId) -> Account | None:
        """Retrieve an account by id."""
        ...

    async def get_by_identifier(self, identifier: str) -> Account | None:
        """Retrieve an account by its normalized identifier."""
        ...


@dataclass(frozen=True)
class ReservedIdentifier:
    """A schema or role name that has been handed out."""

    name: str
    kind: str
    tenant_id: str
    reserved_at: datetime


@runtime_checkable
class IIdentifierLedger(Protocol):
    """Append-only ledger of every schema and role name ever reserved.

    Guarantees names are never reused, even after a tenant is deleted.
    """

    async def reserve(self, tenant_id: TenantId, schema_name: str, role_name: str) -> None:
        """Reserve both names for a tenant.

        Raises:
            ConflictError: If either name was reserved before
        """
        ...

    async def get(self, name: str) -> ReservedIdentifier | None:
        """Look up a reservation by name."""
        ...

    async def list_all(self) -> list[ReservedIdentifier]:
        """List every reservation."""
        ...
