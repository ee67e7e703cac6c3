"""Domain probes for infrastructure observability.

Domain probes provide a high-level instrumentation API oriented around
domain semantics, keeping infrastructure code clean and testable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class ConnectionProbe(Protocol):
    """Domain probe for database engine observability.

    This probe captures domain-significant events related to engines and
    their pools without exposing logging implementation details.
    """

    def engine_created(self, kind: str, host: str, database: str, pool_size: int) -> None:
        """Record that an engine and its pool were created."""
        ...

    def engine_disposed(self, kind: str) -> None:
        """Record that an engine's pool was closed."""
        ...

    def connection_failed(self, host: str, database: str, error: Exception) -> None:
        """Record that a database connection attempt failed."""
        ...

    def with_context(self, context: ObservationContext) -> ConnectionProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultConnectionProbe:
    """Default implementation of ConnectionProbe using structlog.

    Supports observation context for including request-scoped metadata
    with all log events.
    """

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

    def with_context(self, context: ObservationContext) -> DefaultConnectionProbe:
        """Create a new probe with observation context bound."""
        return DefaultConnectionProbe(logger=self._logger, context=context)

    def engine_created(self, kind: str, host: str, database: str, pool_size: int) -> None:
        """Record that an engine and its pool were created."""
        self._emit(
            "info",
            "database_engine_created",
            kind=kind,
            host=host,
            database=database,
            pool_size=pool_size,
        )

    def engine_disposed(self, kind: str) -> None:
        """Record that an engine's pool was closed."""
        self._emit(
            "info",
            "database_engine_disposed",
            kind=kind,
        )

    def connection_failed(self, host: str, database: str, error: Exception) -> None:
        """Record that a database connection attempt failed."""
        self._emit(
            "error",
            "database_connection_failed",
            host=host,
            database=database,
            error=str(error),
        )
