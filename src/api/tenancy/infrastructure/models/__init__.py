"""SQLAlchemy ORM models for the tenancy control plane.

Only control-plane tables are mapped. Tenant-local tables are created
inside each tenant schema by the tenant schema repository.
"""

from tenancy.infrastructure.models.account import AccountModel
from tenancy.infrastructure.models.provisioned_identifier import (
    ProvisionedIdentifierModel,
)
from tenancy.infrastructure.models.tenant import TenantModel

__all__ = [
    "AccountModel",
    "ProvisionedIdentifierModel",
    "TenantModel",
]
