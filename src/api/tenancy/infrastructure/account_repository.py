"""PostgreSQL implementation of IAccountRepository."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.domain.aggregates import Account
from tenancy.domain.exceptions import ConflictError
from tenancy.domain.value_objects import AccountId, ControlPlaneRole
from tenancy.infrastructure.models import AccountModel
from tenancy.infrastructure.observability import (
    DefaultTenantRepositoryProbe,
    TenantRepositoryProbe,
)
from tenancy.ports.repositories import IAccountRepository


class AccountRepository(IAccountRepository):
    """Repository managing PostgreSQL storage for control-plane accounts."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TenantRepositoryProbe | None = None,
    ) -> None:
        self._session = session
        self._probe = probe or DefaultTenantRepositoryProbe()

    async def save(self, account: Account) -> None:
        """Insert or update an account.

        Raises:
            ConflictError: If the identifier is already registered
        """
        try:
            model = await self._session.get(AccountModel, account.id.value)
            if model is None:
                self._session.add(
                    AccountModel(
                        id=account.id.value,
                        identifier=account.identifier,
                        secret_hash=account.secret_hash,
                        display_name=account.display_name,
                        roles=sorted(role.value for role in account.roles),
                        active=account.active,
                        created_at=account.created_at,
                        updated_at=account.updated_at,
                    )
                )
            else:
                model.secret_hash = account.secret_hash
                model.display_name = account.display_name
                model.roles = sorted(role.value for role in account.roles)
                model.active = account.active
            await self._session.flush()
        except IntegrityError as e:
            raise ConflictError(f"Account '{account.identifier}' already exists") from e

        self._probe.account_saved(account.id.value)

    async def get_by_id(self, account_id: AccountId) -> Account | None:
        """Fetch an account by id."""
        model = await self._session.get(AccountModel, account_id.value)
        return self._to_domain(model) if model is not None else None

    async def get_by_identifier(self, identifier: str) -> Account | None:
        """Fetch an account by its normalized identifier."""
        stmt = select(AccountModel).where(AccountModel.identifier == identifier)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model is not None else None

    @staticmethod
    def _to_domain(model: AccountModel) -> Account:
        return Account(
            id=AccountId(value=model.id),
            identifier=model.identifier,
            secret_hash=model.secret_hash,
            display_name=model.display_name,
            roles=frozenset(ControlPlaneRole(role) for role in model.roles),
            active=model.active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
