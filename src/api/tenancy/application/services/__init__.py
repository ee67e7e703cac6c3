"""Application services for the tenancy bounded context."""

from tenancy.application.services.account_service import AccountService
from tenancy.application.services.auth_context_resolver import AuthContextResolver
from tenancy.application.services.lifecycle_guard import TenantLifecycleGuard
from tenancy.application.services.reconciliation_service import (
    ReconciliationService,
)
from tenancy.application.services.tenant_info_service import TenantInfoService
from tenancy.application.services.tenant_provisioner import TenantProvisioner

__all__ = [
    "AccountService",
    "AuthContextResolver",
    "ReconciliationService",
    "TenantInfoService",
    "TenantLifecycleGuard",
    "TenantProvisioner",
]
