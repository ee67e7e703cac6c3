"""Control-plane account administration."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.application.observability import (
    AccountServiceProbe,
    DefaultAccountServiceProbe,
)
from tenancy.application.security import MAX_SECRET_BYTES, CredentialIssuer
from tenancy.domain.aggregates import Account, normalize_account_identifier
from tenancy.domain.exceptions import ConflictError, ValidationError
from tenancy.domain.value_objects import ControlPlaneRole
from tenancy.ports.repositories import IAccountRepository

MIN_SECRET_LENGTH = 12


class AccountService:
    """Registers control-plane accounts that own tenants."""

    def __init__(
        self,
        session: AsyncSession,
        account_repository: IAccountRepository,
        credential_issuer: CredentialIssuer,
        probe: AccountServiceProbe | None = None,
    ):
        self._session = session
        self._account_repository = account_repository
        self._issuer = credential_issuer
        self._probe = probe or DefaultAccountServiceProbe()

    async def register_account(
        self,
        identifier: str,
        secret: str,
        display_name: str = "",
        roles: set[ControlPlaneRole] | None = None,
    ) -> Account:
        """Create an account with a bcrypt-hashed secret.

        Raises:
            ValidationError: If the identifier is empty, or the secret is too
                short or longer than bcrypt accepts
            ConflictError: If the identifier is already registered
        """
        normalized = normalize_account_identifier(identifier)
        if len(secret or "") < MIN_SECRET_LENGTH:
            raise ValidationError(
                f"Account secret must be at least {MIN_SECRET_LENGTH} characters"
            )
        if len(secret.encode()) > MAX_SECRET_BYTES:
            raise ValidationError(
                f"Account secret must not exceed {MAX_SECRET_BYTES} bytes"
            )

        account = Account.create(
            identifier=normalized,
            secret_hash=self._issuer.hash_secret(secret),
            display_name=display_name,
            roles=roles or {ControlPlaneRole.USER},
        )
        try:
            async with self._session.begin():
                if await self._account_repository.get_by_identifier(normalized):
                    raise ConflictError(f"Account '{normalized}' already exists")
                await self._account_repository.save(account)
        except ConflictError:
            self._probe.duplicate_account(identifier=normalized)
            raise

        self._probe.account_registered(account_id=account.id.value, identifier=normalized)
        return account
