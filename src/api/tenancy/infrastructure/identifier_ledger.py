"""PostgreSQL implementation of IIdentifierLedger.

The ledger only ever grows. A name's primary key row outlives the tenant
that used it, which is what keeps schema and role names from being reused.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.domain.exceptions import ConflictError
from tenancy.domain.identifiers import validate_identifier
from tenancy.domain.value_objects import TenantId
from tenancy.infrastructure.models import ProvisionedIdentifierModel
from tenancy.infrastructure.observability import (
    DefaultTenantRepositoryProbe,
    TenantRepositoryProbe,
)
from tenancy.ports.repositories import IIdentifierLedger, ReservedIdentifier

SCHEMA_KIND = "schema"
ROLE_KIND = "role"


class IdentifierLedger(IIdentifierLedger):
    """Append-only record of reserved schema and role names."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TenantRepositoryProbe | None = None,
    ) -> None:
        self._session = session
        self._probe = probe or DefaultTenantRepositoryProbe()

    async def reserve(self, tenant_id: TenantId, schema_name: str, role_name: str) -> None:
        """Reserve a schema name and a role name for a tenant.

        Raises:
            ConflictError: If either name was ever reserved before
        """
        names = [validate_identifier(schema_name), validate_identifier(role_name)]
        self._session.add_all(
            [
                ProvisionedIdentifierModel(
                    name=schema_name, kind=SCHEMA_KIND, tenant_id=tenant_id.value
                ),
                ProvisionedIdentifierModel(
                    name=role_name, kind=ROLE_KIND, tenant_id=tenant_id.value
                ),
            ]
        )
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise ConflictError(f"Identifiers {names} were reserved before") from e

        self._probe.identifiers_reserved(tenant_id.value, names)

    async def get(self, name: str) -> ReservedIdentifier | None:
        """Look up a reservation by name."""
        model = await self._session.get(ProvisionedIdentifierModel, name)
        return self._to_domain(model) if model is not None else None

    async def list_all(self) -> list[ReservedIdentifier]:
        """List every reservation, oldest first."""
        stmt = select(ProvisionedIdentifierModel).order_by(
            ProvisionedIdentifierModel.reserved_at
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    @staticmethod
    def _to_domain(model: ProvisionedIdentifierModel) -> ReservedIdentifier:
        return ReservedIdentifier(
            name=model.name,
            kind=model.kind,
            tenant_id=model.tenant_id,
            reserved_at=model.reserved_at,
        )
