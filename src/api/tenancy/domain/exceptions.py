"""Exceptions for the tenancy bounded context.

Every error raised by the core derives from TenancyError so the
presentation layer can map error kinds onto structured failures.
Validation, not-found, conflict and authentication errors are
recoverable at the boundary; provisioning and integrity errors are not.
"""

from __future__ import annotations


class TenancyError(Exception):
    """Base class for all tenancy errors."""

    pass


class ValidationError(TenancyError):
    """Raised when caller input is rejected."""

    pass


class InvalidIdentifierError(ValidationError):
    """Raised when a schema or role name fails allow-list validation.

    Identifiers cannot be bound as query parameters, so any name that
    does not match the allow-list must never reach a DDL statement.
    """

    pass


class DuplicateTenantNameError(ValidationError):
    """Raised when a tenant display name is already taken.

    Names are compared case-insensitively at creation time.
    """

    pass


class NotFoundError(TenancyError):
    """Raised when a requested entity does not exist."""

    pass


class TenantNotFoundError(NotFoundError):
    """Raised when a tenant does not exist or is inactive."""

    pass


class AccountNotFoundError(NotFoundError):
    """Raised when a control-plane account does not exist."""

    pass


class AuthenticationError(TenancyError):
    """Raised when credentials or tokens are rejected.

    The message is always generic so callers cannot learn which part of
    the check failed.
    """

    GENERIC_MESSAGE = "invalid credentials"

    def __init__(self, message: str = GENERIC_MESSAGE) -> None:
        super().__init__(message)


class UnauthorizedError(TenancyError):
    """Raised when an authenticated caller may not perform an operation."""

    pass


class ConflictError(TenancyError):
    """Raised when an operation collides with existing state."""

    pass


class ResourceExistsError(ConflictError):
    """Raised when an engine role or schema already exists."""

    pass


class TenantBusyError(ConflictError):
    """Raised when another lifecycle operation is running for the tenant."""

    pass


class ProvisioningError(TenancyError):
    """Raised when engine-level DDL fails.

    Carries the identifiers needed to reconcile leftovers by hand.
    """

    def __init__(
        self,
        message: str,
        *,
        tenant_id: str | None = None,
        schema_name: str | None = None,
        role_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.tenant_id = tenant_id
        self.schema_name = schema_name
        self.role_name = role_name


class InvalidRoleTransitionError(ProvisioningError):
    """Raised when a tenant role skips a lifecycle state."""

    pass


class IntegrityError(TenancyError):
    """Raised when encrypted material or a signature fails verification.

    Integrity errors are fatal for the current operation and must not be
    retried with the same input.
    """

    pass


class CredentialGenerationError(TenancyError):
    """Raised when the operating system cannot supply secure randomness."""

    pass
