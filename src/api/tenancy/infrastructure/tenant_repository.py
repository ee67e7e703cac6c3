"""PostgreSQL implementation of ITenantRepository.

Stores tenant records in the control-plane database. Display name
uniqueness is enforced by a unique constraint on the casefolded name.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.domain.aggregates import TenantRecord, display_name_key
from tenancy.domain.exceptions import DuplicateTenantNameError
from tenancy.domain.value_objects import AccountId, TenantId
from tenancy.infrastructure.models import TenantModel
from tenancy.infrastructure.observability import (
    DefaultTenantRepositoryProbe,
    TenantRepositoryProbe,
)
from tenancy.ports.repositories import ITenantRepository

DISPLAY_NAME_CONSTRAINT = "uq_tenants_display_name_key"


class TenantRepository(ITenantRepository):
    """Repository managing PostgreSQL storage for TenantRecord aggregates."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TenantRepositoryProbe | None = None,
    ) -> None:
        """Initialize repository with database session.

        Args:
            session: Control-plane AsyncSession
            probe: Optional domain probe for observability
        """
        self._session = session
        self._probe = probe or DefaultTenantRepositoryProbe()

    async def save(self, record: TenantRecord) -> None:
        """Insert or update a tenant record.

        Only the mutable columns are written on update.

        Raises:
            DuplicateTenantNameError: If the display name is already taken
        """
        try:
            model = await self._session.get(TenantModel, record.id.value)
            if model is None:
                self._session.add(
                    TenantModel(
                        id=record.id.value,
                        display_name=record.display_name,
                        display_name_key=display_name_key(record.display_name),
                        owner_id=record.owner_id.value,
                        schema_name=record.schema_name,
                        database_user=record.database_user,
                        encrypted_secret=record.encrypted_secret,
                        active=record.active,
                        created_at=record.created_at,
                        updated_at=record.updated_at,
                    )
                )
            else:
                model.active = record.active
                model.encrypted_secret = record.encrypted_secret
                model.updated_at = record.updated_at

            # Flush to surface constraint violations here
            await self._session.flush()
        except IntegrityError as e:
            if DISPLAY_NAME_CONSTRAINT in str(e):
                self._probe.duplicate_tenant_name(record.display_name)
                raise DuplicateTenantNameError(
                    f"Tenant '{record.display_name}' already exists"
                ) from e
            raise

        self._probe.tenant_saved(record.id.value)

    async def get_by_id(self, tenant_id: TenantId) -> TenantRecord | None:
        """Fetch a tenant record by id."""
        model = await self._session.get(TenantModel, tenant_id.value)
        return self._to_domain(model) if model is not None else None

    async def get_by_display_name(self, name: str) -> TenantRecord | None:
        """Fetch a tenant record by display name, ignoring case."""
        stmt = select(TenantModel).where(
            TenantModel.display_name_key == display_name_key(name)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model is not None else None

    async def list_by_owner(self, owner_id: AccountId) -> list[TenantRecord]:
        """Fetch every tenant created by an account, oldest first."""
        stmt = (
            select(TenantModel)
            .where(TenantModel.owner_id == owner_id.value)
            .order_by(TenantModel.created_at, TenantModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def list_all(self) -> list[TenantRecord]:
        """Fetch every tenant record."""
        stmt = select(TenantModel).order_by(TenantModel.id)
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def delete(self, tenant_id: TenantId) -> bool:
        """Delete a tenant record.

        Returns:
            True if deleted, False if not found
        """
        model = await self._session.get(TenantModel, tenant_id.value)
        if model is None:
            return False

        await self._session.delete(model)
        await self._session.flush()

        self._probe.tenant_deleted(tenant_id.value)
        return True

    @staticmethod
    def _to_domain(model: TenantModel) -> TenantRecord:
        return TenantRecord(
            id=TenantId(value=model.id),
            display_name=model.display_name,
            owner_id=AccountId(value=model.owner_id),
            schema_name=model.schema_name,
            database_user=model.database_user,
            encrypted_secret=model.encrypted_secret,
            active=model.active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
