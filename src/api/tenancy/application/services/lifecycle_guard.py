"""In-process guard serializing lifecycle operations per tenant.

Creating and deleting the same tenant concurrently would interleave DDL
against the same schema and role. Overlapping operations are rejected as
conflicts instead of queued. Claims are taken without awaiting, so the
check and the claim are atomic on the event loop.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from tenancy.domain.exceptions import TenantBusyError


class TenantLifecycleGuard:
    """Tracks keys with a lifecycle operation in flight."""

    def __init__(self) -> None:
        self._in_flight: set[str] = set()

    def is_busy(self, key: str) -> bool:
        """Whether an operation currently holds the key."""
        return key in self._in_flight

    @contextmanager
    def claim(self, key: str) -> Iterator[None]:
        """Hold the key for the duration of the block.

        Raises:
            TenantBusyError: If the key is already held
        """
        if key in self._in_flight:
            raise TenantBusyError(f"Another operation is in progress for {key}")
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)


def tenant_key(tenant_id: str) -> str:
    """Guard key for operations on one tenant."""
    return f"tenant:{tenant_id}"


def name_key(normalized_name: str) -> str:
    """Guard key for creations of one display name."""
    return f"name:{normalized_name}"
