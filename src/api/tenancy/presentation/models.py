"""Pydantic models returned by the tenancy facade."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from tenancy.application.value_objects import (
    AccessToken,
    CallerContext,
    ControlPlaneContext,
    ProvisionedTenant,
    TenantCredentials,
)
from tenancy.domain.aggregates import TenantRecord
from tenancy.domain.value_objects import TenantInfoEntry, TokenType


class OperationFailure(BaseModel):
    """Structured failure for recoverable errors."""

    code: str = Field(..., description="Machine-readable error kind")
    message: str = Field(..., description="Human-readable description")


class CreateTenantResponse(BaseModel):
    """Response model for a newly provisioned tenant.

    The api secret is shown exactly once and is not stored in plaintext.
    """

    tenant_id: str = Field(..., description="Tenant ID (ULID format)")
    schema_name: str = Field(..., description="Dedicated schema name")
    api_key: str = Field(..., description="Owner api key")
    api_secret: str = Field(..., description="Owner api secret (shown once)")

    @classmethod
    def from_domain(cls, provisioned: ProvisionedTenant) -> CreateTenantResponse:
        """Convert a provisioning result to a response."""
        return cls(
            tenant_id=provisioned.record.id.value,
            schema_name=provisioned.record.schema_name,
            api_key=provisioned.credentials.api_key,
            api_secret=provisioned.credentials.api_secret,
        )


class DeleteTenantResponse(BaseModel):
    """Response model for tenant deletion."""

    deleted: bool = Field(..., description="False if the tenant was unknown")


class TenantResponse(BaseModel):
    """Response model for a tenant record. Never exposes the secret."""

    id: str = Field(..., description="Tenant ID (ULID format)")
    display_name: str = Field(..., description="Name given at creation")
    owner_id: str = Field(..., description="Creating account ID")
    schema_name: str = Field(..., description="Dedicated schema name")
    database_user: str = Field(..., description="Dedicated role name")
    active: bool = Field(..., description="Whether authentication is enabled")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, record: TenantRecord) -> TenantResponse:
        """Convert a TenantRecord to a response."""
        return cls(
            id=record.id.value,
            display_name=record.display_name,
            owner_id=record.owner_id.value,
            schema_name=record.schema_name,
            database_user=record.database_user,
            active=record.active,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class TokenResponse(BaseModel):
    """Response model for an issued token."""

    token: str
    token_type: TokenType
    expires_at: datetime

    @classmethod
    def from_domain(cls, access_token: AccessToken) -> TokenResponse:
        """Convert an AccessToken to a response."""
        return cls(
            token=access_token.token,
            token_type=access_token.token_type,
            expires_at=access_token.expires_at,
        )


class CallerContextResponse(BaseModel):
    """Response model describing who a token belongs to."""

    token_type: TokenType
    subject: str = Field(..., description="Account ID or tenant user ID")
    roles: list[str]
    tenant_id: str | None = None
    schema_name: str | None = None

    @classmethod
    def from_domain(cls, context: CallerContext) -> CallerContextResponse:
        """Convert a caller context to a response."""
        if isinstance(context, ControlPlaneContext):
            return cls(
                token_type=TokenType.CONTROL_PLANE,
                subject=context.account_id.value,
                roles=sorted(role.value for role in context.roles),
            )
        return cls(
            token_type=TokenType.TENANT,
            subject=context.tenant_user_id.value,
            roles=sorted(role.value for role in context.roles),
            tenant_id=context.tenant_id.value,
            schema_name=context.schema_name,
        )


class CredentialsResponse(BaseModel):
    """Response model for rotated tenant credentials (shown once)."""

    api_key: str
    api_secret: str

    @classmethod
    def from_domain(cls, credentials: TenantCredentials) -> CredentialsResponse:
        """Convert TenantCredentials to a response."""
        return cls(api_key=credentials.api_key, api_secret=credentials.api_secret)


class TenantInfoResponse(BaseModel):
    """Response model for one tenant info row."""

    key: str
    value: str
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, entry: TenantInfoEntry) -> TenantInfoResponse:
        """Convert a TenantInfoEntry to a response."""
        return cls(key=entry.key, value=entry.value, updated_at=entry.updated_at)
