"""Per-tenant connection material cache.

Each tenant gets a descriptor (decrypted credentials and its search path)
and a small engine logged in as the tenant role. Both are created lazily
and cached by tenant id. The cache is the only state shared across
tenants, so it uses one asyncio.Lock per tenant id and a lock-free read
path; unrelated tenants never wait on each other.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from infrastructure.database.engines import create_tenant_engine
from infrastructure.settings import DatabaseSettings
from tenancy.domain.aggregates import TenantRecord
from tenancy.domain.exceptions import IntegrityError, TenantNotFoundError
from tenancy.infrastructure.observability import (
    ConnectionBrokerProbe,
    DefaultConnectionBrokerProbe,
)
from tenancy.ports.connections import (
    ConnectionDescriptor,
    ISecretCipher,
    ITenantConnectionBroker,
)

RecordLoader = Callable[[str], Awaitable[TenantRecord | None]]
EngineFactory = Callable[[ConnectionDescriptor, int], AsyncEngine]


@dataclass
class _CacheEntry:
    descriptor: ConnectionDescriptor
    engine: AsyncEngine | None = None


class ConnectionBroker(ITenantConnectionBroker):
    """Builds, caches and invalidates tenant connection material."""

    def __init__(
        self,
        settings: DatabaseSettings,
        cipher: ISecretCipher,
        record_loader: RecordLoader,
        default_schema: str = "public",
        engine_factory: EngineFactory = create_tenant_engine,
        pool_size: int = 5,
        probe: ConnectionBrokerProbe | None = None,
    ) -> None:
        """Initialize ConnectionBroker.

        Args:
            settings: Supplies host, port and database for tenant engines
            cipher: Decrypts tenant role passwords
            record_loader: Loads a tenant record from the control plane
            default_schema: Schema appended after the tenant schema
            engine_factory: Creates an engine from a descriptor
            pool_size: Connection pool size of each tenant engine
            probe: Optional domain probe for observability
        """
        self._settings = settings
        self._cipher = cipher
        self._record_loader = record_loader
        self._default_schema = default_schema
        self._engine_factory = engine_factory
        self._pool_size = pool_size
        self._probe = probe or DefaultConnectionBrokerProbe()
        self._entries: dict[str, _CacheEntry] = {}
        # Locks live only while a coroutine holds or awaits them.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        return self._locks.setdefault(tenant_id, asyncio.Lock())

    def is_cached(self, tenant_id: str) -> bool:
        """Whether a descriptor for the tenant is currently cached."""
        return tenant_id in self._entries

    def build_connection_descriptor(self, record: TenantRecord) -> ConnectionDescriptor:
        """Decrypt the record's secret and assemble a descriptor.

        The search path is the tenant's own schema followed by the
        default schema, never another tenant's.

        Raises:
            IntegrityError: If the stored secret fails decryption
        """
        try:
            password = self._cipher.decrypt(record.encrypted_secret)
        except IntegrityError:
            self._probe.secret_decryption_failed(record.id.value)
            raise

        return ConnectionDescriptor(
            tenant_id=record.id.value,
            host=self._settings.host,
            port=self._settings.port,
            database=self._settings.database,
            username=record.database_user,
            password=password,
            schema_name=record.schema_name,
            search_path=(record.schema_name, self._default_schema),
        )

    async def get_or_build_descriptor(self, tenant_id: str) -> ConnectionDescriptor:
        """Return the cached descriptor, loading the record on a miss.

        Raises:
            TenantNotFoundError: If the tenant is unknown or inactive
            IntegrityError: If the stored secret fails decryption
        """
        entry = self._entries.get(tenant_id)
        if entry is not None:
            self._probe.descriptor_cache_hit(tenant_id)
            return entry.descriptor

        async with self._lock_for(tenant_id):
            entry = self._entries.get(tenant_id)
            if entry is None:
                record = await self._record_loader(tenant_id)
                if record is None or not record.active:
                    raise TenantNotFoundError(f"Tenant {tenant_id} not found")
                entry = _CacheEntry(descriptor=self.build_connection_descriptor(record))
                self._entries[tenant_id] = entry
                self._probe.descriptor_built(tenant_id, record.schema_name)
            return entry.descriptor

    async def prime(self, record: TenantRecord) -> ConnectionDescriptor:
        """Cache a descriptor for a record that is not yet persisted."""
        tenant_id = record.id.value
        descriptor = self.build_connection_descriptor(record)
        async with self._lock_for(tenant_id):
            previous = self._entries.get(tenant_id)
            self._entries[tenant_id] = _CacheEntry(descriptor=descriptor)
        if previous is not None and previous.engine is not None:
            await previous.engine.dispose()
        self._probe.descriptor_built(tenant_id, record.schema_name)
        return descriptor

    async def _engine_for(self, tenant_id: str) -> AsyncEngine:
        entry = self._entries.get(tenant_id)
        if entry is not None and entry.engine is not None:
            return entry.engine

        await self.get_or_build_descriptor(tenant_id)
        async with self._lock_for(tenant_id):
            entry = self._entries.get(tenant_id)
            if entry is None:
                # Invalidated between the descriptor load and here.
                raise TenantNotFoundError(f"Tenant {tenant_id} is no longer available")
            if entry.engine is None:
                entry.engine = self._engine_factory(entry.descriptor, self._pool_size)
            return entry.engine

    @asynccontextmanager
    async def connect(self, tenant_id: str) -> AsyncIterator[AsyncConnection]:
        """Open a connection as the tenant role."""
        engine = await self._engine_for(tenant_id)
        async with engine.connect() as connection:
            yield connection

    @asynccontextmanager
    async def transaction(self, tenant_id: str) -> AsyncIterator[AsyncConnection]:
        """Open a connection as the tenant role inside a transaction.

        Commits on normal exit and rolls back when the block raises.
        """
        engine = await self._engine_for(tenant_id)
        async with engine.begin() as connection:
            yield connection

    async def invalidate(self, tenant_id: str) -> None:
        """Drop the cached descriptor and dispose the tenant engine."""
        async with self._lock_for(tenant_id):
            entry = self._entries.pop(tenant_id, None)
        if entry is not None and entry.engine is not None:
            await entry.engine.dispose()
        self._probe.descriptor_invalidated(tenant_id, was_cached=entry is not None)

    async def validate_connection(self, tenant_id: str) -> bool:
        """Check the tenant's database is reachable with its own role.

        Returns:
            False on engine or network failure, or for an unknown tenant

        Raises:
            IntegrityError: If the stored secret fails decryption
        """
        try:
            async with self.connect(tenant_id) as connection:
                await connection.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError, TenantNotFoundError) as e:
            self._probe.connection_validation_failed(tenant_id, e)
            return False
        return True

    async def close(self) -> None:
        """Dispose every cached tenant engine."""
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            if entry.engine is not None:
                await entry.engine.dispose()
