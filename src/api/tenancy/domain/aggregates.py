"""Aggregates for the tenancy bounded context."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from tenancy.domain.exceptions import ValidationError
from tenancy.domain.value_objects import (
    AccountId,
    ControlPlaneRole,
    TenantId,
    TenantIdentity,
    TenantRole,
    TenantUserId,
)

MAX_DISPLAY_NAME_LENGTH = 200


def normalize_display_name(name: str) -> str:
    """Strip and validate a tenant display name.

    Raises:
        ValidationError: If the name is empty or too long
    """
    stripped = (name or "").strip()
    if not stripped:
        raise ValidationError("Tenant name must not be empty")
    if len(stripped) > MAX_DISPLAY_NAME_LENGTH:
        raise ValidationError(
            f"Tenant name exceeds {MAX_DISPLAY_NAME_LENGTH} characters"
        )
    return stripped


def display_name_key(name: str) -> str:
    """Case-insensitive comparison key for tenant display names."""
    return name.strip().casefold()


@dataclass
class TenantRecord:
    """Control-plane record describing one tenant.

    Business rules:
    - id, schema_name, database_user and owner_id never change
    - display_name is fixed after creation; renames live in the
      tenant-local info table
    - only active, updated_at and encrypted_secret are ever mutated
    """

    id: TenantId
    display_name: str
    owner_id: AccountId
    schema_name: str
    database_user: str
    encrypted_secret: str = field(repr=False)
    active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        identity: TenantIdentity,
        display_name: str,
        owner_id: AccountId,
        encrypted_secret: str,
    ) -> TenantRecord:
        """Factory method for a freshly provisioned tenant."""
        now = datetime.now(UTC)
        return cls(
            id=identity.tenant_id,
            display_name=normalize_display_name(display_name),
            owner_id=owner_id,
            schema_name=identity.schema_name,
            database_user=identity.database_user,
            encrypted_secret=encrypted_secret,
            active=True,
            created_at=now,
            updated_at=now,
        )

    def set_active(self, active: bool) -> None:
        """Enable or soft-disable authentication for the tenant."""
        self.active = active
        self.updated_at = datetime.now(UTC)

    def replace_secret(self, encrypted_secret: str) -> None:
        """Store a newly encrypted role password."""
        self.encrypted_secret = encrypted_secret
        self.updated_at = datetime.now(UTC)

    def is_owned_by(self, account_id: AccountId) -> bool:
        """Whether the given account created this tenant."""
        return self.owner_id == account_id


@dataclass
class TenantUser:
    """A user stored inside a single tenant's schema.

    Only ever reachable through a connection scoped to that schema.
    """

    id: TenantUserId
    api_key: str
    api_secret_hash: str = field(repr=False)
    display_name: str
    roles: frozenset[TenantRole]
    active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_login_at: datetime | None = None

    @classmethod
    def create(
        cls,
        api_key: str,
        api_secret_hash: str,
        display_name: str,
        roles: frozenset[TenantRole] | set[TenantRole],
    ) -> TenantUser:
        """Factory method for a new tenant user.

        Raises:
            ValidationError: If no role is given
        """
        if not roles:
            raise ValidationError("A tenant user needs at least one role")
        return cls(
            id=TenantUserId.generate(),
            api_key=api_key,
            api_secret_hash=api_secret_hash,
            display_name=display_name,
            roles=frozenset(roles),
        )


@dataclass
class Account:
    """A control-plane account that owns and manages tenants."""

    id: AccountId
    identifier: str
    secret_hash: str = field(repr=False)
    display_name: str
    roles: frozenset[ControlPlaneRole]
    active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        identifier: str,
        secret_hash: str,
        display_name: str,
        roles: frozenset[ControlPlaneRole] | set[ControlPlaneRole],
    ) -> Account:
        """Factory method for a new control-plane account.

        Raises:
            ValidationError: If the identifier is empty or no role is given
        """
        normalized = normalize_account_identifier(identifier)
        if not roles:
            raise ValidationError("An account needs at least one role")
        return cls(
            id=AccountId.generate(),
            identifier=normalized,
            secret_hash=secret_hash,
            display_name=display_name.strip() or normalized,
            roles=frozenset(roles),
        )


def normalize_account_identifier(identifier: str) -> str:
    """Lowercase and strip an account identifier.

    Raises:
        ValidationError: If the identifier is empty
    """
    normalized = (identifier or "").strip().lower()
    if not normalized:
        raise ValidationError("Account identifier must not be empty")
    return normalized
