"""Ports for tenant-scoped connections and tenant-local storage."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

from tenancy.domain.aggregates import TenantRecord, TenantUser
from tenancy.domain.value_objects import (
    TenantInfoEntry,
    TenantRole,
    TenantUserId,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Resolved connection parameters for one tenant.

    The password is decrypted material and is excluded from repr.
    """

    tenant_id: str
    host: str
    port: int
    database: str
    username: str
    password: str = field(repr=False)
    schema_name: str
    search_path: tuple[str, ...]

    @property
    def search_path_setting(self) -> str:
        """Search path formatted as a server setting value."""
        return ", ".join(f'"{schema}"' for schema in self.search_path)


@runtime_checkable
class ISecretCipher(Protocol):
    """Symmetric authenticated encryption of tenant role passwords."""

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret into a self-contained blob."""
        ...

    def decrypt(self, blob: str) -> str:
        """Decrypt a blob.

        Raises:
            IntegrityError: If the blob was tampered with or the key is wrong
        """
        ...


@runtime_checkable
class ITenantConnectionBroker(Protocol):
    """Builds, caches and invalidates tenant connection material."""

    def build_connection_descriptor(self, record: TenantRecord) -> ConnectionDescriptor:
        """Decrypt the record's secret and assemble a descriptor."""
        ...

    async def get_or_build_descriptor(self, tenant_id: str) -> ConnectionDescriptor:
        """Return the cached descriptor, loading the record on a miss."""
        ...

    async def prime(self, record: TenantRecord) -> ConnectionDescriptor:
        """Cache a descriptor for a record that is not yet persisted."""
        ...

    def connect(self, tenant_id: str) -> AbstractAsyncContextManager[AsyncConnection]:
        """Open a connection as the tenant role."""
        ...

    def transaction(
        self, tenant_id: str
    ) -> AbstractAsyncContextManager[AsyncConnection]:
        """Open a connection as the tenant role inside a transaction."""
        ...

    async def invalidate(self, tenant_id: str) -> None:
        """Drop cached material for the tenant."""
        ...

    async def validate_connection(self, tenant_id: str) -> bool:
        """Check the tenant's database is reachable with its own role."""
        ...


@runtime_checkable
class ITenantStore(Protocol):
    """Tenant-local tables, bound to exactly one schema."""

    @property
    def schema_name(self) -> str:
        """The schema every statement is qualified with."""
        ...

    async def bootstrap(self, connection: Any, display_name: str) -> None:
        """Create the tenant-local tables and seed the info table."""
        ...

    async def insert_user(self, connection: Any, user: TenantUser) -> None:
        """Insert a user and its role assignments."""
        ...

    async def find_user_by_api_key(
        self, connection: Any, api_key: str
    ) -> TenantUser | None:
        """Find a user by api key, with active roles loaded."""
        ...

    async def find_first_user_with_role(
        self, connection: Any, role: TenantRole
    ) -> TenantUser | None:
        """Find the oldest active user holding a role."""
        ...

    async def update_credentials(
        self,
        connection: Any,
        user_id: TenantUserId,
        api_key: str,
        api_secret_hash: str,
    ) -> None:
        """Replace a user's api key and secret hash."""
        ...

    async def record_login(self, connection: Any, user_id: TenantUserId) -> None:
        """Stamp last_login_at for a user."""
        ...

    async def list_info(self, connection: Any) -> list[TenantInfoEntry]:
        """Return every info row ordered by key."""
        ...

    async def set_info(
        self, connection: Any, key: str, value: str
    ) -> TenantInfoEntry:
        """Insert or update an info row."""
        ...


TenantStoreFactory = Callable[[str], ITenantStore]
