"""Tenant-local key/value info access.

The info table lives inside each tenant schema. It also holds the
mutable display name of the tenant; the control-plane record keeps the
name it was created with.
"""

from __future__ import annotations

import re

from tenancy.application.observability import (
    DefaultTenantInfoServiceProbe,
    TenantInfoServiceProbe,
)
from tenancy.application.value_objects import CallerContext, TenantContext
from tenancy.domain.exceptions import (
    AuthenticationError,
    UnauthorizedError,
    ValidationError,
)
from tenancy.domain.value_objects import TenantInfoEntry, TenantRole
from tenancy.ports.connections import ITenantConnectionBroker, TenantStoreFactory

INFO_KEY_PATTERN = re.compile(r"^[a-z][a-z0-9_.-]{0,99}$")
MAX_INFO_VALUE_LENGTH = 10_000

DISPLAY_NAME_KEY = "display_name"


class TenantInfoService:
    """Reads and writes the info table of the caller's own tenant."""

    def __init__(
        self,
        connection_broker: ITenantConnectionBroker,
        tenant_store_factory: TenantStoreFactory,
        probe: TenantInfoServiceProbe | None = None,
    ):
        self._broker = connection_broker
        self._store_factory = tenant_store_factory
        self._probe = probe or DefaultTenantInfoServiceProbe()

    async def get_tenant_info(self, caller: CallerContext) -> list[TenantInfoEntry]:
        """Return every info row of the caller's tenant.

        Raises:
            UnauthorizedError: If the caller is not tenant-scoped
        """
        context = await self._require_tenant_context(caller)
        store = self._store_factory(context.schema_name)
        async with self._broker.connect(context.tenant_id.value) as connection:
            entries = await store.list_info(connection)
        self._probe.tenant_info_listed(
            tenant_id=context.tenant_id.value, count=len(entries)
        )
        return entries

    async def set_tenant_info(
        self, caller: CallerContext, key: str, value: str
    ) -> TenantInfoEntry:
        """Insert or update one info row of the caller's tenant.

        Requires the owner or operator role.

        Raises:
            UnauthorizedError: If the caller is not tenant-scoped or lacks a role
            ValidationError: If the key or value is rejected
        """
        context = await self._require_tenant_context(caller)
        if not context.has_any_role(TenantRole.OWNER, TenantRole.OPERATOR):
            raise UnauthorizedError("Updating tenant info requires owner or operator")
        if not INFO_KEY_PATTERN.fullmatch(key or ""):
            raise ValidationError(f"Invalid info key: {key!r}")
        if value is None or len(value) > MAX_INFO_VALUE_LENGTH:
            raise ValidationError("Info value is missing or too long")
        if key == DISPLAY_NAME_KEY and not value.strip():
            raise ValidationError("Display name must not be empty")

        store = self._store_factory(context.schema_name)
        async with self._broker.transaction(context.tenant_id.value) as connection:
            entry = await store.set_info(connection, key, value)
        self._probe.tenant_info_updated(tenant_id=context.tenant_id.value, key=key)
        return entry

    async def _require_tenant_context(self, caller: CallerContext) -> TenantContext:
        if not isinstance(caller, TenantContext):
            raise UnauthorizedError("A tenant-scoped context is required")
        descriptor = await self._broker.get_or_build_descriptor(caller.tenant_id.value)
        if descriptor.schema_name != caller.schema_name:
            self._probe.tenant_scope_mismatch(
                tenant_id=caller.tenant_id.value, schema_name=caller.schema_name
            )
            raise AuthenticationError()
        return caller
