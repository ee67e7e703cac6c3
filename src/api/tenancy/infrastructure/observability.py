"""Domain probes for tenancy infrastructure.

Covers the control-plane repositories, engine DDL and the tenant
connection cache. Passwords and decrypted material are never logged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class _StructlogProbe:
    """Shared structlog plumbing for the default probes below."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def _emit(self, level: str, event: str, **fields: Any) -> None:
        """Log an event with context metadata, letting explicit fields win."""
        getattr(self._logger, level)(event, **{**self._get_context_kwargs(), **fields})

    def with_context(self, context: ObservationContext):
        """Create a new probe with observation context bound."""
        return type(self)(logger=self._logger, context=context)


class TenantRepositoryProbe(Protocol):
    """Domain probe for control-plane repository operations."""

    def tenant_saved(self, tenant_id: str) -> None:
        """Record that a tenant record was persisted."""
        ...

    def tenant_deleted(self, tenant_id: str) -> None:
        """Record that a tenant record was removed."""
        ...

    def duplicate_tenant_name(self, name: str) -> None:
        """Record that the display name constraint was violated."""
        ...

    def identifiers_reserved(self, tenant_id: str, names: list[str]) -> None:
        """Record that schema and role names were reserved."""
        ...

    def account_saved(self, account_id: str) -> None:
        """Record that an account was persisted."""
        ...

    def with_context(self, context: ObservationContext) -> TenantRepositoryProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultTenantRepositoryProbe(_StructlogProbe):
    """Default implementation of TenantRepositoryProbe using structlog."""

    def tenant_saved(self, tenant_id: str) -> None:
        """Record that a tenant record was persisted."""
        self._emit("debug", "tenant_saved", tenant_id=tenant_id)

    def tenant_deleted(self, tenant_id: str) -> None:
        """Record that a tenant record was removed."""
        self._emit("info", "tenant_record_deleted", tenant_id=tenant_id)

    def duplicate_tenant_name(self, name: str) -> None:
        """Record that the display name constraint was violated."""
        self._emit("warning", "duplicate_tenant_name", name=name)

    def identifiers_reserved(self, tenant_id: str, names: list[str]) -> None:
        """Record that schema and role names were reserved."""
        self._emit(
            "info",
            "identifiers_reserved",
            tenant_id=tenant_id,
            names=names,
        )

    def account_saved(self, account_id: str) -> None:
        """Record that an account was persisted."""
        self._emit("debug", "account_saved", account_id=account_id)


class SchemaAdminProbe(Protocol):
    """Domain probe for engine-level DDL."""

    def role_created(self, role_name: str) -> None:
        """Record that a tenant role was created with login disabled."""
        ...

    def role_login_enabled(self, role_name: str) -> None:
        """Record that a tenant role may now log in."""
        ...

    def role_password_changed(self, role_name: str) -> None:
        """Record that a tenant role received a new password."""
        ...

    def schema_created(self, schema_name: str, owner_role: str) -> None:
        """Record that a tenant schema was created."""
        ...

    def schema_access_granted(self, schema_name: str, role_name: str) -> None:
        """Record that a role was granted access to a schema."""
        ...

    def privileges_revoked(self, role_name: str, schemas: list[str]) -> None:
        """Record that a role lost privileges on schemas."""
        ...

    def schema_dropped(self, schema_name: str) -> None:
        """Record that a schema was dropped."""
        ...

    def role_dropped(self, role_name: str) -> None:
        """Record that a role was dropped."""
        ...

    def ddl_failed(self, operation: str, name: str, error: Exception) -> None:
        """Record that a DDL statement failed."""
        ...

    def with_context(self, context: ObservationContext) -> SchemaAdminProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultSchemaAdminProbe(_StructlogProbe):
    """Default implementation of SchemaAdminProbe using structlog."""

    def role_created(self, role_name: str) -> None:
        """Record that a tenant role was created with login disabled."""
        self._emit("info", "role_created", role_name=role_name)

    def role_login_enabled(self, role_name: str) -> None:
        """Record that a tenant role may now log in."""
        self._emit("info", "role_login_enabled", role_name=role_name)

    def role_password_changed(self, role_name: str) -> None:
        """Record that a tenant role received a new password."""
        self._emit("info", "role_password_changed", role_name=role_name)

    def schema_created(self, schema_name: str, owner_role: str) -> None:
        """Record that a tenant schema was created."""
        self._emit(
            "info",
            "schema_created",
            schema_name=schema_name,
            owner_role=owner_role,
        )

    def schema_access_granted(self, schema_name: str, role_name: str) -> None:
        """Record that a role was granted access to a schema."""
        self._emit(
            "info",
            "schema_access_granted",
            schema_name=schema_name,
            role_name=role_name,
        )

    def privileges_revoked(self, role_name: str, schemas: list[str]) -> None:
        """Record that a role lost privileges on schemas."""
        self._emit(
            "warning",
            "privileges_revoked",
            role_name=role_name,
            schemas=schemas,
        )

    def schema_dropped(self, schema_name: str) -> None:
        """Record that a schema was dropped."""
        self._emit("info", "schema_dropped", schema_name=schema_name)

    def role_dropped(self, role_name: str) -> None:
        """Record that a role was dropped."""
        self._emit("info", "role_dropped", role_name=role_name)

    def ddl_failed(self, operation: str, name: str, error: Exception) -> None:
        """Record that a DDL statement failed."""
        self._emit(
            "error",
            "ddl_failed",
            operation=operation,
            name=name,
            error=str(error),
        )


class ConnectionBrokerProbe(Protocol):
    """Domain probe for the tenant connection cache."""

    def descriptor_built(self, tenant_id: str, schema_name: str) -> None:
        """Record that a descriptor was built on a cache miss."""
        ...

    def descriptor_cache_hit(self, tenant_id: str) -> None:
        """Record that a descriptor was served from cache."""
        ...

    def descriptor_invalidated(self, tenant_id: str, was_cached: bool) -> None:
        """Record that cached material for a tenant was dropped."""
        ...

    def secret_decryption_failed(self, tenant_id: str) -> None:
        """Record that a tenant secret failed integrity checks."""
        ...

    def connection_validation_failed(self, tenant_id: str, error: Exception) -> None:
        """Record that a tenant connection could not be opened."""
        ...

    def with_context(self, context: ObservationContext) -> ConnectionBrokerProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultConnectionBrokerProbe(_StructlogProbe):
    """Default implementation of ConnectionBrokerProbe using structlog."""

    def descriptor_built(self, tenant_id: str, schema_name: str) -> None:
        """Record that a descriptor was built on a cache miss."""
        self._emit(
            "info",
            "connection_descriptor_built",
            tenant_id=tenant_id,
            schema_name=schema_name,
        )

    def descriptor_cache_hit(self, tenant_id: str) -> None:
        """Record that a descriptor was served from cache."""
        self._emit(
            "debug",
            "connection_descriptor_cache_hit",
            tenant_id=tenant_id,
        )

    def descriptor_invalidated(self, tenant_id: str, was_cached: bool) -> None:
        """Record that cached material for a tenant was dropped."""
        self._emit(
            "info",
            "connection_descriptor_invalidated",
            tenant_id=tenant_id,
            was_cached=was_cached,
        )

    def secret_decryption_failed(self, tenant_id: str) -> None:
        """Record that a tenant secret failed integrity checks."""
        self._emit(
            "critical",
            "tenant_secret_decryption_failed",
            tenant_id=tenant_id,
        )

    def connection_validation_failed(self, tenant_id: str, error: Exception) -> None:
        """Record that a tenant connection could not be opened."""
        self._emit(
            "warning",
            "tenant_connection_validation_failed",
            tenant_id=tenant_id,
            error=str(error),
        )
