"""Domain probe for token issuing and validation.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events related to signed tokens. Token contents are
never logged.

See: https://martinfowler.com/articles/domain-oriented-observability.html
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class JWTCodecProbe(Protocol):
    """Domain probe for token operations."""

    def token_issued(self, subject: str, token_type: str) -> None:
        """Record that a token was issued."""
        ...

    def token_validated(self, subject: str, token_type: str) -> None:
        """Record that a token was successfully validated."""
        ...

    def token_validation_failed(self, reason: str) -> None:
        """Record that token validation failed."""
        ...

    def with_context(self, context: ObservationContext) -> JWTCodecProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultJWTCodecProbe:
    """Default implementation of JWTCodecProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultJWTCodecProbe:
        """Create a new probe with observation context bound."""
        return DefaultJWTCodecProbe(logger=self._logger, context=context)

    def token_issued(self, subject: str, token_type: str) -> None:
        """Record that a token was issued."""
        self._emit(
            "info",
            "token_issued",
            subject=subject,
            token_type=token_type,
        )

    def token_validated(self, subject: str, token_type: str) -> None:
        """Record that a token was successfully validated."""
        self._emit(
            "debug",
            "token_validated",
            subject=subject,
            token_type=token_type,
        )

    def token_validation_failed(self, reason: str) -> None:
        """Record that token validation failed."""
        self._emit(
            "warning",
            "token_validation_failed",
            reason=reason,
        )
