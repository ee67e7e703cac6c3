"""Ports (interfaces) for the tenancy bounded context.

Ports define the contracts for repositories, engine administration and
tenant-scoped storage without specifying implementation details.
"""

from tenancy.ports.connections import (
    ConnectionDescriptor,
    ISecretCipher,
    ITenantConnectionBroker,
    ITenantStore,
    TenantStoreFactory,
)
from tenancy.ports.repositories import (
    IAccountRepository,
    IIdentifierLedger,
    ITenantRepository,
    ReservedIdentifier,
)
from tenancy.ports.schema_admin import ISchemaAdmin, RoleInfo

__all__ = [
    "ConnectionDescriptor",
    "IAccountRepository",
    "IIdentifierLedger",
    "ISchemaAdmin",
    "ISecretCipher",
    "ITenantConnectionBroker",
    "ITenantRepository",
    "ITenantStore",
    "ReservedIdentifier",
    "RoleInfo",
    "TenantStoreFactory",
]
