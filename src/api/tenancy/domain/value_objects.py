"""Value objects for the tenancy domain.

Value objects are immutable descriptors that provide type safety and
domain semantics for identifiers and domain concepts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from ulid import ULID

from tenancy.domain.identifiers import derive_name


@dataclass(frozen=True)
class TenantId:
    """Identifier for a tenant.

    Uses ULID for sortability and distribution-friendly generation. The
    lowercased value is embedded in the tenant's schema and role names.
    """

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> TenantId:
        """Generate a new TenantId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> TenantId:
        """Create TenantId from string value.

        Raises:
            ValueError: If value is not a valid ULID
        """
        try:
            ULID.from_str(value)
        except ValueError as e:
            raise ValueError(f"Invalid TenantId: {value}") from e

        return cls(value=value)


@dataclass(frozen=True)
class TenantUserId:
    """Identifier for a user stored inside a tenant schema."""

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> TenantUserId:
        """Generate a new TenantUserId using ULID."""
        return cls(value=str(ULID()))


@dataclass(frozen=True)
class AccountId:
    """Identifier for a control-plane account."""

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> AccountId:
        """Generate a new AccountId using ULID."""
        return cls(value=str(ULID()))


class TenantRole(StrEnum):
    """Roles a user can hold inside a tenant.

    Owner is the highest role and is assigned to the first user created
    during provisioning.
    """

    OWNER = "owner"
    OPERATOR = "operator"


class ControlPlaneRole(StrEnum):
    """Roles a control-plane account can hold."""

    SUPERADMIN = "superadmin"
    USER = "user"


class TokenType(StrEnum):
    """Discriminator carried by every issued token."""

    CONTROL_PLANE = "control_plane"
    TENANT = "tenant"


@dataclass(frozen=True)
class TenantIdentity:
    """Engine-level names derived deterministically from a tenant id."""

    tenant_id: TenantId
    schema_name: str
    database_user: str

    @classmethod
    def derive(
        cls, tenant_id: TenantId, schema_prefix: str, role_prefix: str
    ) -> TenantIdentity:
        """Derive and validate the schema and role names for a tenant."""
        return cls(
            tenant_id=tenant_id,
            schema_name=derive_name(tenant_id.value, schema_prefix),
            database_user=derive_name(tenant_id.value, role_prefix),
        )


@dataclass(frozen=True)
class TenantInfoEntry:
    """A row of the tenant-local key/value info table."""

    key: str
    value: str
    updated_at: datetime | None = None
