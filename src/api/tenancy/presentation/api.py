"""In-process facade over the tenancy services.

A transport layer (HTTP, GraphQL, RPC) calls these methods and renders
the pydantic results. Recoverable errors come back as OperationFailure;
ProvisioningError and IntegrityError propagate to the caller.
"""

from __future__ import annotations

from tenancy.application.services import (
    AuthContextResolver,
    TenantInfoService,
    TenantProvisioner,
)
from tenancy.application.value_objects import CallerContext
from tenancy.domain.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    TenancyError,
    UnauthorizedError,
    ValidationError,
)
from tenancy.domain.value_objects import AccountId, TenantId
from tenancy.presentation.models import (
    CallerContextResponse,
    CreateTenantResponse,
    CredentialsResponse,
    DeleteTenantResponse,
    OperationFailure,
    TenantInfoResponse,
    TenantResponse,
    TokenResponse,
)

RECOVERABLE_ERRORS = (
    ValidationError,
    NotFoundError,
    ConflictError,
    AuthenticationError,
    UnauthorizedError,
)


def to_failure(error: TenancyError) -> OperationFailure:
    """Map a recoverable error onto a structured failure."""
    if isinstance(error, ValidationError):
        return OperationFailure(code="validation_error", message=str(error))
    if isinstance(error, NotFoundError):
        return OperationFailure(code="not_found", message=str(error))
    if isinstance(error, ConflictError):
        return OperationFailure(code="conflict", message=str(error))
    if isinstance(error, AuthenticationError):
        return OperationFailure(
            code="authentication_failed", message=AuthenticationError.GENERIC_MESSAGE
        )
    if isinstance(error, UnauthorizedError):
        return OperationFailure(code="unauthorized", message=str(error))
    raise error


def _parse_tenant_id(tenant_id: str) -> TenantId:
    try:
        return TenantId.from_string(tenant_id)
    except ValueError as e:
        raise ValidationError(f"Invalid tenant ID format: {tenant_id!r}") from e


class TenancyAPI:
    """Facade exposing tenant lifecycle, authentication and tenant info."""

    def __init__(
        self,
        provisioner: TenantProvisioner,
        resolver: AuthContextResolver,
        info_service: TenantInfoService,
    ):
        self._provisioner = provisioner
        self._resolver = resolver
        self._info_service = info_service

    async def create_tenant(
        self, name: str, owner_id: str
    ) -> CreateTenantResponse | OperationFailure:
        """Provision a tenant and return its one-time owner credentials."""
        try:
            provisioned = await self._provisioner.create_tenant(
                name=name, owner_id=AccountId(value=owner_id)
            )
        except RECOVERABLE_ERRORS as e:
            return to_failure(e)
        return CreateTenantResponse.from_domain(provisioned)

    async def delete_tenant(self, tenant_id: str) -> DeleteTenantResponse | OperationFailure:
        """Tear down a tenant. Unknown ids report deleted=False."""
        try:
            deleted = await self._provisioner.delete_tenant(_parse_tenant_id(tenant_id))
        except RECOVERABLE_ERRORS as e:
            return to_failure(e)
        return DeleteTenantResponse(deleted=deleted)

    async def get_tenant(self, tenant_id: str) -> TenantResponse | OperationFailure:
        """Fetch a tenant record. An id that cannot name a tenant is not found."""
        not_found = OperationFailure(code="not_found", message=f"Tenant {tenant_id} not found")
        try:
            parsed = _parse_tenant_id(tenant_id)
        except ValidationError:
            return not_found
        try:
            record = await self._provisioner.get_tenant(parsed)
        except RECOVERABLE_ERRORS as e:
            return to_failure(e)
        if record is None:
            return not_found
        return TenantResponse.from_domain(record)

    async def list_tenants_by_owner(self, owner_id: str) -> list[TenantResponse]:
        """List the tenants an account created, oldest first."""
        records = await self._provisioner.list_tenants_by_owner(AccountId(value=owner_id))
        return [TenantResponse.from_domain(record) for record in records]

    async def authenticate(
        self, identifier: str, secret: str, tenant_id: str | None = None
    ) -> TokenResponse | OperationFailure:
        """Exchange credentials for a control-plane or tenant token."""
        try:
            token = await self._resolver.authenticate(identifier, secret, tenant_id)
        except RECOVERABLE_ERRORS as e:
            return to_failure(e)
        return TokenResponse.from_domain(token)

    async def resolve_context(self, token: str) -> CallerContext:
        """Resolve a token into the caller context other methods accept.

        Raises:
            AuthenticationError: If the token is rejected
        """
        return await self._resolver.resolve(token)

    async def resolve_token(self, token: str) -> CallerContextResponse | OperationFailure:
        """Describe the caller a token belongs to."""
        try:
            context = await self._resolver.resolve(token)
        except RECOVERABLE_ERRORS as e:
            return to_failure(e)
        return CallerContextResponse.from_domain(context)

    async def reset_tenant_credentials(
        self, context: CallerContext, tenant_id: str
    ) -> CredentialsResponse | OperationFailure:
        """Rotate the owner user's api key and secret."""
        try:
            credentials = await self._provisioner.reset_tenant_credentials(
                context, _parse_tenant_id(tenant_id)
            )
        except RECOVERABLE_ERRORS as e:
            return to_failure(e)
        return CredentialsResponse.from_domain(credentials)

    async def get_tenant_info(
        self, context: CallerContext
    ) -> list[TenantInfoResponse] | OperationFailure:
        """List the info rows of the caller's tenant."""
        try:
            entries = await self._info_service.get_tenant_info(context)
        except RECOVERABLE_ERRORS as e:
            return to_failure(e)
        return [TenantInfoResponse.from_domain(entry) for entry in entries]

    async def set_tenant_info(
        self, context: CallerContext, key: str, value: str
    ) -> TenantInfoResponse | OperationFailure:
        """Insert or update one info row of the caller's tenant."""
        try:
            entry = await self._info_service.set_tenant_info(context, key, value)
        except RECOVERABLE_ERRORS as e:
            return to_failure(e)
        return TenantInfoResponse.from_domain(entry)
