"""Protocols for authentication and tenant-local access observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class AuthContextResolverProbe(Protocol):
    """Domain probe for authentication and token resolution."""

    def authenticated(
        self, subject: str, token_type: str, tenant_id: str | None = None
    ) -> None:
        """Record that a caller authenticated and received a token."""
        ...

    def authentication_failed(self, reason: str, tenant_id: str | None = None) -> None:
        """Record why authentication failed (never reported to the caller)."""
        ...

    def token_resolved(self, subject: str, token_type: str) -> None:
        """Record that a token resolved to a caller context."""
        ...

    def token_rejected(self, reason: str) -> None:
        """Record why a token was rejected."""
        ...

    def with_context(self, context: ObservationContext) -> AuthContextResolverProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultAuthContextResolverProbe:
    """Default implementation of AuthContextResolverProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultAuthContextResolverProbe:
        """Create a new probe with observation context bound."""
        return DefaultAuthContextResolverProbe(logger=self._logger, context=context)

    def authenticated(
        self, subject: str, token_type: str, tenant_id: str | None = None
    ) -> None:
        """Record that a caller authenticated and received a token."""
        self._emit(
            "info",
            "caller_authenticated",
            subject=subject,
            token_type=token_type,
            tenant_id=tenant_id,
        )

    def authentication_failed(self, reason: str, tenant_id: str | None = None) -> None:
        """Record why authentication failed (never reported to the caller)."""
        self._emit(
            "warning",
            "authentication_failed",
            reason=reason,
            tenant_id=tenant_id,
        )

    def token_resolved(self, subject: str, token_type: str) -> None:
        """Record that a token resolved to a caller context."""
        self._emit(
            "debug",
            "token_resolved",
            subject=subject,
            token_type=token_type,
        )

    def token_rejected(self, reason: str) -> None:
        """Record why a token was rejected."""
        self._emit(
            "warning",
            "token_rejected",
            reason=reason,
        )


class TenantInfoServiceProbe(Protocol):
    """Domain probe for the tenant-local info table."""

    def tenant_info_listed(self, tenant_id: str, count: int) -> None:
        """Record that info rows were read."""
        ...

    def tenant_info_updated(self, tenant_id: str, key: str) -> None:
        """Record that an info row was written."""
        ...

    def tenant_scope_mismatch(self, tenant_id: str, schema_name: str) -> None:
        """Record that a context named a schema its tenant does not own."""
        ...

    def with_context(self, context: ObservationContext) -> TenantInfoServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultTenantInfoServiceProbe:
    """Default implementation of TenantInfoServiceProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultTenantInfoServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultTenantInfoServiceProbe(logger=self._logger, context=context)

    def tenant_info_listed(self, tenant_id: str, count: int) -> None:
        """Record that info rows were read."""
        self._emit(
            "debug",
            "tenant_info_listed",
            tenant_id=tenant_id,
            count=count,
        )

    def tenant_info_updated(self, tenant_id: str, key: str) -> None:
        """Record that an info row was written."""
        self._emit(
            "info",
            "tenant_info_updated",
            tenant_id=tenant_id,
            key=key,
        )

    def tenant_scope_mismatch(self, tenant_id: str, schema_name: str) -> None:
        """Record that a context named a schema its tenant does not own."""
        self._emit(
            "error",
            "tenant_scope_mismatch",
            tenant_id=tenant_id,
            schema_name=schema_name,
        )
