"""Domain probes for tenancy application services."""

from tenancy.application.observability.auth_probe import (
    AuthContextResolverProbe,
    DefaultAuthContextResolverProbe,
    DefaultTenantInfoServiceProbe,
    TenantInfoServiceProbe,
)
from tenancy.application.observability.maintenance_probe import (
    AccountServiceProbe,
    DefaultAccountServiceProbe,
    DefaultReconciliationProbe,
    ReconciliationProbe,
)
from tenancy.application.observability.tenant_provisioner_probe import (
    DefaultTenantProvisionerProbe,
    TenantProvisionerProbe,
)

__all__ = [
    "AccountServiceProbe",
    "AuthContextResolverProbe",
    "DefaultAccountServiceProbe",
    "DefaultAuthContextResolverProbe",
    "DefaultReconciliationProbe",
    "DefaultTenantInfoServiceProbe",
    "DefaultTenantProvisionerProbe",
    "ReconciliationProbe",
    "TenantInfoServiceProbe",
    "TenantProvisionerProbe",
]
