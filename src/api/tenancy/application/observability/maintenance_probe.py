"""Protocols for reconciliation and account administration observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class ReconciliationProbe(Protocol):
    """Domain probe for the orphan reconciliation sweep."""

    def orphan_detected(self, kind: str, name: str, reserved: bool) -> None:
        """Record an engine resource with no tenant record."""
        ...

    def dangling_tenant_detected(
        self, tenant_id: str, schema_missing: bool, role_missing: bool
    ) -> None:
        """Record a tenant record whose engine resources are missing."""
        ...

    def orphan_dropped(self, kind: str, name: str) -> None:
        """Record that an orphan was garbage-collected."""
        ...

    def orphan_drop_failed(self, kind: str, name: str, error: Exception) -> None:
        """Record that garbage-collecting an orphan failed."""
        ...

    def reconciliation_completed(
        self, orphans: int, dangling: int, dropped: int, dry_run: bool
    ) -> None:
        """Record the outcome of a sweep."""
        ...

    def with_context(self, context: ObservationContext) -> ReconciliationProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultReconciliationProbe:
    """Default implementation of ReconciliationProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultReconciliationProbe:
        """Create a new probe with observation context bound."""
        return DefaultReconciliationProbe(logger=self._logger, context=context)

    def orphan_detected(self, kind: str, name: str, reserved: bool) -> None:
        """Record an engine resource with no tenant record."""
        self._emit(
            "warning",
            "orphan_detected",
            kind=kind,
            name=name,
            reserved=reserved,
        )

    def dangling_tenant_detected(
        self, tenant_id: str, schema_missing: bool, role_missing: bool
    ) -> None:
        """Record a tenant record whose engine resources are missing."""
        self._emit(
            "error",
            "dangling_tenant_detected",
            tenant_id=tenant_id,
            schema_missing=schema_missing,
            role_missing=role_missing,
        )

    def orphan_dropped(self, kind: str, name: str) -> None:
        """Record that an orphan was garbage-collected."""
        self._emit(
            "info",
            "orphan_dropped",
            kind=kind,
            name=name,
        )

    def orphan_drop_failed(self, kind: str, name: str, error: Exception) -> None:
        """Record that garbage-collecting an orphan failed."""
        self._emit(
            "error",
            "orphan_drop_failed",
            kind=kind,
            name=name,
            error=str(error),
        )

    def reconciliation_completed(
        self, orphans: int, dangling: int, dropped: int, dry_run: bool
    ) -> None:
        """Record the outcome of a sweep."""
        self._emit(
            "info",
            "reconciliation_completed",
            orphans=orphans,
            dangling=dangling,
            dropped=dropped,
            dry_run=dry_run,
        )


class AccountServiceProbe(Protocol):
    """Domain probe for control-plane account administration."""

    def account_registered(self, account_id: str, identifier: str) -> None:
        """Record that an account was registered."""
        ...

    def duplicate_account(self, identifier: str) -> None:
        """Record that an identifier was already registered."""
        ...

    def with_context(self, context: ObservationContext) -> AccountServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultAccountServiceProbe:
    """Default implementation of AccountServiceProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultAccountServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultAccountServiceProbe(logger=self._logger, context=context)

    def account_registered(self, account_id: str, identifier: str) -> None:
        """Record that an account was registered."""
        self._emit(
            "info",
            "account_registered",
            account_id=account_id,
            identifier=identifier,
        )

    def duplicate_account(self, identifier: str) -> None:
        """Record that an identifier was already registered."""
        self._emit(
            "warning",
            "duplicate_account",
            identifier=identifier,
        )
