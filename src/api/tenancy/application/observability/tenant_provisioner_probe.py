"""Protocol for tenant provisioning observability.

Defines the interface for domain probes that capture application-level
domain events for the tenant lifecycle: creation, rollback, teardown
and credential changes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class TenantProvisionerProbe(Protocol):
    """Domain probe for tenant provisioning operations."""

    def tenant_provisioning_started(
        self, tenant_id: str, schema_name: str, role_name: str
    ) -> None:
        """Record that provisioning began for a new tenant id."""
        ...

    def tenant_provisioned(self, tenant_id: str, name: str, owner_id: str) -> None:
        """Record that a tenant was fully provisioned."""
        ...

    def duplicate_tenant_name(self, name: str) -> None:
        """Record that a duplicate tenant name was rejected."""
        ...

    def tenant_busy(self, key: str) -> None:
        """Record that a lifecycle operation collided with another."""
        ...

    def tenant_provisioning_failed(
        self, tenant_id: str, schema_name: str, role_name: str, error: Exception
    ) -> None:
        """Record that provisioning failed and rollback begins."""
        ...

    def tenant_rolled_back(self, tenant_id: str, schema_name: str, role_name: str) -> None:
        """Record that rollback removed the partial resources."""
        ...

    def tenant_rollback_failed(
        self,
        tenant_id: str,
        schema_name: str,
        role_name: str,
        step: str,
        error: Exception,
    ) -> None:
        """Record that a rollback step failed and needs manual reconciliation."""
        ...

    def tenant_deleted(self, tenant_id: str, schema_name: str, role_name: str) -> None:
        """Record that a tenant was torn down."""
        ...

    def tenant_not_found(self, tenant_id: str) -> None:
        """Record that a tenant was not found."""
        ...

    def tenant_credentials_reset(self, tenant_id: str, user_id: str) -> None:
        """Record that the owner credentials of a tenant were replaced."""
        ...

    def database_secret_rotated(self, tenant_id: str, role_name: str) -> None:
        """Record that the tenant role password was rotated."""
        ...

    def tenant_activation_changed(self, tenant_id: str, active: bool) -> None:
        """Record that a tenant was activated or deactivated."""
        ...

    def tenant_quarantined(self, tenant_id: str, revoked_schemas: list[str]) -> None:
        """Record that a tenant role was confined to its own schema."""
        ...

    def with_context(self, context: ObservationContext) -> TenantProvisionerProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultTenantProvisionerProbe:
    """Default implementation of TenantProvisionerProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultTenantProvisionerProbe:
        """Create a new probe with observation context bound."""
        return DefaultTenantProvisionerProbe(logger=self._logger, context=context)

    def tenant_provisioning_started(
        self, tenant_id: str, schema_name: str, role_name: str
    ) -> None:
        """Record that provisioning began for a new tenant id."""
        self._emit(
            "info",
            "tenant_provisioning_started",
            tenant_id=tenant_id,
            schema_name=schema_name,
            role_name=role_name,
        )

    def tenant_provisioned(self, tenant_id: str, name: str, owner_id: str) -> None:
        """Record that a tenant was fully provisioned."""
        self._emit(
            "info",
            "tenant_provisioned",
            tenant_id=tenant_id,
            name=name,
            owner_id=owner_id,
        )

    def duplicate_tenant_name(self, name: str) -> None:
        """Record that a duplicate tenant name was rejected."""
        self._emit(
            "warning",
            "duplicate_tenant_name",
            name=name,
        )

    def tenant_busy(self, key: str) -> None:
        """Record that a lifecycle operation collided with another."""
        self._emit(
            "warning",
            "tenant_busy",
            key=key,
        )

    def tenant_provisioning_failed(
        self, tenant_id: str, schema_name: str, role_name: str, error: Exception
    ) -> None:
        """Record that provisioning failed and rollback begins."""
        self._emit(
            "error",
            "tenant_provisioning_failed",
            tenant_id=tenant_id,
            schema_name=schema_name,
            role_name=role_name,
            error=str(error),
            error_type=type(error).__name__,
        )

    def tenant_rolled_back(self, tenant_id: str, schema_name: str, role_name: str) -> None:
        """Record that rollback removed the partial resources."""
        self._emit(
            "info",
            "tenant_rolled_back",
            tenant_id=tenant_id,
            schema_name=schema_name,
            role_name=role_name,
        )

    def tenant_rollback_failed(
        self,
        tenant_id: str,
        schema_name: str,
        role_name: str,
        step: str,
        error: Exception,
    ) -> None:
        """Record that a rollback step failed and needs manual reconciliation."""
        self._emit(
            "error",
            "tenant_rollback_failed",
            tenant_id=tenant_id,
            schema_name=schema_name,
            role_name=role_name,
            step=step,
            error=str(error),
            error_type=type(error).__name__,
        )

    def tenant_deleted(self, tenant_id: str, schema_name: str, role_name: str) -> None:
        """Record that a tenant was torn down."""
        self._emit(
            "info",
            "tenant_deleted",
            tenant_id=tenant_id,
            schema_name=schema_name,
            role_name=role_name,
        )

    def tenant_not_found(self, tenant_id: str) -> None:
        """Record that a tenant was not found."""
        self._emit(
            "debug",
            "tenant_not_found",
            tenant_id=tenant_id,
        )

    def tenant_credentials_reset(self, tenant_id: str, user_id: str) -> None:
        """Record that the owner credentials of a tenant were replaced."""
        self._emit(
            "info",
            "tenant_credentials_reset",
            tenant_id=tenant_id,
            tenant_user_id=user_id,
        )

    def database_secret_rotated(self, tenant_id: str, role_name: str) -> None:
        """Record that the tenant role password was rotated."""
        self._emit(
            "info",
            "database_secret_rotated",
            tenant_id=tenant_id,
            role_name=role_name,
        )

    def tenant_activation_changed(self, tenant_id: str, active: bool) -> None:
        """Record that a tenant was activated or deactivated."""
        self._emit(
            "info",
            "tenant_activation_changed",
            tenant_id=tenant_id,
            active=active,
        )

    def tenant_quarantined(self, tenant_id: str, revoked_schemas: list[str]) -> None:
        """Record that a tenant role was confined to its own schema."""
        self._emit(
            "warning",
            "tenant_quarantined",
            tenant_id=tenant_id,
            revoked_schemas=revoked_schemas,
        )
