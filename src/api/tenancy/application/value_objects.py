"""Application-layer value objects for the tenancy bounded context.

These represent caller contexts resolved from tokens and the one-time
results handed back by provisioning operations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from tenancy.domain.aggregates import TenantRecord
from tenancy.domain.value_objects import (
    AccountId,
    ControlPlaneRole,
    TenantId,
    TenantRole,
    TenantUserId,
    TokenType,
)


@dataclass(frozen=True)
class ControlPlaneContext:
    """A caller authenticated against the control plane.

    Grants access to control-plane operations only; it never carries a
    schema and cannot reach tenant-local data.
    """

    account_id: AccountId
    identifier: str
    roles: frozenset[ControlPlaneRole]

    @property
    def is_superadmin(self) -> bool:
        """Whether the account holds the superadmin role."""
        return ControlPlaneRole.SUPERADMIN in self.roles


@dataclass(frozen=True)
class TenantContext:
    """A caller authenticated inside exactly one tenant.

    schema_name comes from a verified token and is the only schema name
    tenant-local operations may use.
    """

    tenant_id: TenantId
    schema_name: str
    tenant_user_id: TenantUserId
    roles: frozenset[TenantRole]

    def has_any_role(self, *roles: TenantRole) -> bool:
        """Whether the caller holds at least one of the given roles."""
        return any(role in self.roles for role in roles)


CallerContext = ControlPlaneContext | TenantContext


@dataclass(frozen=True)
class TenantCredentials:
    """Plaintext api key and secret, visible exactly once."""

    api_key: str
    api_secret: str = field(repr=False)


@dataclass(frozen=True)
class ProvisionedTenant:
    """Result of a successful tenant creation."""

    record: TenantRecord
    credentials: TenantCredentials


@dataclass(frozen=True)
class AccessToken:
    """A signed token together with its kind and expiry."""

    token: str = field(repr=False)
    token_type: TokenType
    expires_at: datetime


@dataclass(frozen=True)
class ReconciliationReport:
    """Outcome of comparing engine resources with tenant records.

    Attributes:
        orphan_schemas: Tenant-pattern schemas with no tenant record
        orphan_roles: Tenant-pattern roles with no tenant record
        stalled_roles: Orphan roles that never gained login
        dangling_tenants: Tenant ids whose schema or role is missing
        unreserved_names: Orphans that were never reserved in the ledger
        dropped_schemas: Orphan schemas removed by this sweep
        dropped_roles: Orphan roles removed by this sweep
    """

    orphan_schemas: tuple[str, ...] = ()
    orphan_roles: tuple[str, ...] = ()
    stalled_roles: tuple[str, ...] = ()
    dangling_tenants: tuple[str, ...] = ()
    unreserved_names: tuple[str, ...] = ()
    dropped_schemas: tuple[str, ...] = ()
    dropped_roles: tuple[str, ...] = ()
    dry_run: bool = True

    @property
    def is_clean(self) -> bool:
        """Whether engine and metadata agree."""
        return not (self.orphan_schemas or self.orphan_roles or self.dangling_tenants)
