"""Out-of-band reconciliation of engine resources and tenant records.

Provisioning creates engine resources before the tenant record, so a
crash leaves schemas and roles with no record. This sweep lists engine
names matching the tenant naming scheme, diffs them against the records,
and optionally drops orphans. It is idempotent.

Only orphans whose names sit in the identifier ledger for longer than
the grace period are dropped; younger ones may belong to a provisioning
call still in flight. Names never reserved are reported but left alone.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.application.observability import (
    DefaultReconciliationProbe,
    ReconciliationProbe,
)
from tenancy.application.value_objects import ReconciliationReport
from tenancy.domain.exceptions import InvalidIdentifierError
from tenancy.domain.identifiers import validate_identifier
from tenancy.ports.repositories import (
    IIdentifierLedger,
    ITenantRepository,
    ReservedIdentifier,
)
from tenancy.ports.schema_admin import ISchemaAdmin


def _matches_scheme(name: str, prefix: str) -> bool:
    try:
        validate_identifier(name, prefix=prefix)
    except InvalidIdentifierError:
        return False
    return True


class ReconciliationService:
    """Detects and garbage-collects orphaned tenant schemas and roles."""

    def __init__(
        self,
        session: AsyncSession,
        tenant_repository: ITenantRepository,
        identifier_ledger: IIdentifierLedger,
        schema_admin: ISchemaAdmin,
        schema_prefix: str = "tenant",
        role_prefix: str = "tenant_user",
        grace_period: timedelta = timedelta(hours=1),
        probe: ReconciliationProbe | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._session = session
        self._tenant_repository = tenant_repository
        self._identifier_ledger = identifier_ledger
        self._schema_admin = schema_admin
        self._schema_prefix = schema_prefix
        self._role_prefix = role_prefix
        self._grace_period = grace_period
        self._probe = probe or DefaultReconciliationProbe()
        self._clock = clock or (lambda: datetime.now(UTC))

    async def sweep(self, dry_run: bool = True) -> ReconciliationReport:
        """Compare engine resources with tenant records.

        Args:
            dry_run: When False, drop orphans that are reserved and past
                the grace period

        Returns:
            What was found and, unless dry_run, what was dropped
        """
        async with self._session.begin():
            records = await self._tenant_repository.list_all()
            reservations = {
                entry.name: entry for entry in await self._identifier_ledger.list_all()
            }

        schemas = {
            name
            for name in await self._schema_admin.list_tenant_schemas(self._schema_prefix)
            if _matches_scheme(name, self._schema_prefix)
        }
        role_infos = [
            info
            for info in await self._schema_admin.list_tenant_roles(self._role_prefix)
            if _matches_scheme(info.name, self._role_prefix)
        ]
        roles = {info.name for info in role_infos}

        orphan_schemas = sorted(schemas - {r.schema_name for r in records})
        claimed_roles = {r.database_user for r in records}
        orphan_roles = sorted(roles - claimed_roles)
        # Never granted login: provisioning stopped before the schema grants.
        stalled_roles = sorted(
            info.name
            for info in role_infos
            if not info.can_login and info.name not in claimed_roles
        )

        dangling: list[str] = []
        for record in records:
            schema_missing = record.schema_name not in schemas
            role_missing = record.database_user not in roles
            if schema_missing or role_missing:
                dangling.append(record.id.value)
                self._probe.dangling_tenant_detected(
                    tenant_id=record.id.value,
                    schema_missing=schema_missing,
                    role_missing=role_missing,
                )

        unreserved: list[str] = []
        for kind, names in (("schema", orphan_schemas), ("role", orphan_roles)):
            for name in names:
                reserved = name in reservations
                if not reserved:
                    unreserved.append(name)
                self._probe.orphan_detected(kind=kind, name=name, reserved=reserved)

        dropped_schemas: list[str] = []
        dropped_roles: list[str] = []
        if not dry_run:
            cutoff = self._clock() - self._grace_period
            # Schemas first: a role cannot be dropped while it owns a schema.
            for name in orphan_schemas:
                if self._collectable(reservations.get(name), cutoff) and await self._drop(
                    "schema", name, self._schema_admin.drop_schema
                ):
                    dropped_schemas.append(name)
            for name in orphan_roles:
                if self._collectable(reservations.get(name), cutoff) and await self._drop(
                    "role", name, self._schema_admin.drop_role
                ):
                    dropped_roles.append(name)

        report = ReconciliationReport(
            orphan_schemas=tuple(orphan_schemas),
            orphan_roles=tuple(orphan_roles),
            stalled_roles=tuple(stalled_roles),
            dangling_tenants=tuple(sorted(dangling)),
            unreserved_names=tuple(sorted(unreserved)),
            dropped_schemas=tuple(dropped_schemas),
            dropped_roles=tuple(dropped_roles),
            dry_run=dry_run,
        )
        self._probe.reconciliation_completed(
            orphans=len(orphan_schemas) + len(orphan_roles),
            dangling=len(dangling),
            dropped=len(dropped_schemas) + len(dropped_roles),
            dry_run=dry_run,
        )
        return report

    @staticmethod
    def _collectable(reservation: ReservedIdentifier | None, cutoff: datetime) -> bool:
        return reservation is not None and reservation.reserved_at <= cutoff

    async def _drop(self, kind: str, name: str, drop: Callable) -> bool:
        try:
            await drop(name)
        except Exception as e:
            # Reported per orphan; the sweep carries on with the others.
            self._probe.orphan_drop_failed(kind=kind, name=name, error=e)
            return False
        self._probe.orphan_dropped(kind=kind, name=name)
        return True
