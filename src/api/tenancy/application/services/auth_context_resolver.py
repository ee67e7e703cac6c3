"""Authentication and token resolution for both caller kinds.

Control-plane callers authenticate against the accounts table and get a
token that never names a schema. Tenant callers authenticate against the
users table inside the tenant's own schema and get a token embedding
that schema. Every failure surfaces as the same AuthenticationError.
"""

from __future__ import annotations

import secrets

from sqlalchemy.ext.asyncio import AsyncSession

from shared_kernel.auth.jwt_codec import TOKEN_TYPE_CLAIM, InvalidTokenError, JWTCodec
from tenancy.application.observability import (
    AuthContextResolverProbe,
    DefaultAuthContextResolverProbe,
)
from tenancy.application.security import CredentialIssuer
from tenancy.application.value_objects import (
    AccessToken,
    CallerContext,
    ControlPlaneContext,
    TenantContext,
)
from tenancy.domain.aggregates import normalize_account_identifier
from tenancy.domain.exceptions import (
    AuthenticationError,
    TenantNotFoundError,
    ValidationError,
)
from tenancy.domain.identifiers import sanitize_id, validate_identifier
from tenancy.domain.value_objects import (
    AccountId,
    ControlPlaneRole,
    TenantId,
    TenantRole,
    TenantUserId,
    TokenType,
)
from tenancy.ports.connections import ITenantConnectionBroker, TenantStoreFactory
from tenancy.ports.repositories import IAccountRepository, ITenantRepository

SCHEMA_CLAIM = "schema"
TENANT_ID_CLAIM = "tenant_id"
ROLES_CLAIM = "roles"
IDENTIFIER_CLAIM = "identifier"


class AuthContextResolver:
    """Issues and interprets control-plane and tenant-scoped tokens."""

    def __init__(
        self,
        session: AsyncSession,
        account_repository: IAccountRepository,
        tenant_repository: ITenantRepository,
        connection_broker: ITenantConnectionBroker,
        tenant_store_factory: TenantStoreFactory,
        credential_issuer: CredentialIssuer,
        token_codec: JWTCodec,
        probe: AuthContextResolverProbe | None = None,
    ):
        """Initialize AuthContextResolver with dependencies.

        Args:
            session: Control-plane session
            account_repository: Repository for control-plane accounts
            tenant_repository: Repository for tenant records
            connection_broker: Tenant connection cache
            tenant_store_factory: Builds a store bound to one tenant schema
            credential_issuer: Verifies hashed secrets
            token_codec: Signs and validates tokens
            probe: Optional domain probe for observability
        """
        self._session = session
        self._account_repository = account_repository
        self._tenant_repository = tenant_repository
        self._broker = connection_broker
        self._store_factory = tenant_store_factory
        self._issuer = credential_issuer
        self._codec = token_codec
        self._probe = probe or DefaultAuthContextResolverProbe()
        self._dummy_hash: str | None = None

    async def authenticate(
        self, identifier: str, secret: str, tenant_id: str | None = None
    ) -> AccessToken:
        """Verify credentials and issue a token.

        Args:
            identifier: Account identifier, or api key when tenant_id is given
            secret: Account secret or api secret
            tenant_id: Tenant to authenticate in; None for the control plane

        Returns:
            A control-plane token, or a tenant token naming that tenant's schema

        Raises:
            AuthenticationError: For any credential, account or tenant problem
        """
        if tenant_id is None:
            return await self._authenticate_account(identifier, secret)
        return await self._authenticate_tenant_user(identifier, secret, tenant_id)

    async def _authenticate_account(self, identifier: str, secret: str) -> AccessToken:
        try:
            normalized = normalize_account_identifier(identifier)
        except ValidationError as e:
            raise self._failure("empty_identifier") from e

        async with self._session.begin():
            account = await self._account_repository.get_by_identifier(normalized)

        if account is None:
            self._burn_verification(secret)
            raise self._failure("unknown_account")
        if not self._issuer.verify_secret(secret, account.secret_hash):
            raise self._failure("invalid_secret")
        if not account.active:
            raise self._failure("inactive_account")

        token, expires_at = self._codec.encode(
            subject=account.id.value,
            token_type=TokenType.CONTROL_PLANE,
            claims={
                IDENTIFIER_CLAIM: account.identifier,
                ROLES_CLAIM: sorted(role.value for role in account.roles),
            },
        )
        self._probe.authenticated(
            subject=account.id.value, token_type=TokenType.CONTROL_PLANE
        )
        return AccessToken(
            token=token, token_type=TokenType.CONTROL_PLANE, expires_at=expires_at
        )

    async def _authenticate_tenant_user(
        self, api_key: str, secret: str, tenant_id: str
    ) -> AccessToken:
        try:
            tid = TenantId.from_string(tenant_id)
        except ValueError as e:
            raise self._failure("malformed_tenant_id") from e

        async with self._session.begin():
            record = await self._tenant_repository.get_by_id(tid)

        if record is None or not record.active:
            self._burn_verification(secret)
            raise self._failure("unknown_or_inactive_tenant", tenant_id)

        store = self._store_factory(record.schema_name)
        try:
            async with self._broker.transaction(record.id.value) as connection:
                user = await store.find_user_by_api_key(connection, api_key)
                if user is None:
                    self._burn_verification(secret)
                    raise self._failure("unknown_api_key", tenant_id)
                if not self._issuer.verify_secret(secret, user.api_secret_hash):
                    raise self._failure("invalid_secret", tenant_id)
                if not user.active or not user.roles:
                    raise self._failure("inactive_user", tenant_id)
                await store.record_login(connection, user.id)
        except TenantNotFoundError as e:
            raise self._failure("tenant_unavailable", tenant_id) from e

        token, expires_at = self._codec.encode(
            subject=user.id.value,
            token_type=TokenType.TENANT,
            claims={
                TENANT_ID_CLAIM: record.id.value,
                SCHEMA_CLAIM: record.schema_name,
                ROLES_CLAIM: sorted(role.value for role in user.roles),
            },
        )
        self._probe.authenticated(
            subject=user.id.value, token_type=TokenType.TENANT, tenant_id=tenant_id
        )
        return AccessToken(token=token, token_type=TokenType.TENANT, expires_at=expires_at)

    async def resolve(self, token: str) -> CallerContext:
        """Validate a token and return the caller context it encodes.

        Raises:
            AuthenticationError: If the token is invalid, expired or malformed
        """
        try:
            claims = self._codec.decode(token)
        except InvalidTokenError as e:
            self._probe.token_rejected(reason=str(e))
            raise AuthenticationError() from e

        try:
            context = self._context_from_claims(claims)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            self._probe.token_rejected(reason=f"Malformed claims: {e}")
            raise AuthenticationError() from e

        self._probe.token_resolved(
            subject=str(claims["sub"]), token_type=str(claims[TOKEN_TYPE_CLAIM])
        )
        return context

    def _context_from_claims(self, claims: dict) -> CallerContext:
        token_type = TokenType(claims[TOKEN_TYPE_CLAIM])
        roles = claims[ROLES_CLAIM]
        if not isinstance(roles, list) or not roles:
            raise ValueError("roles claim must be a non-empty list")

        if token_type is TokenType.CONTROL_PLANE:
            if SCHEMA_CLAIM in claims or TENANT_ID_CLAIM in claims:
                raise ValueError("control-plane tokens cannot name a tenant")
            return ControlPlaneContext(
                account_id=AccountId(value=str(claims["sub"])),
                identifier=str(claims[IDENTIFIER_CLAIM]),
                roles=frozenset(ControlPlaneRole(role) for role in roles),
            )

        tenant_id = TenantId.from_string(str(claims[TENANT_ID_CLAIM]))
        schema_name = validate_identifier(str(claims[SCHEMA_CLAIM]))
        # The schema must be the one derived from this tenant's own id.
        if not schema_name.endswith(f"_{sanitize_id(tenant_id.value)}"):
            raise ValueError("schema claim does not belong to tenant")
        return TenantContext(
            tenant_id=tenant_id,
            schema_name=schema_name,
            tenant_user_id=TenantUserId(value=str(claims["sub"])),
            roles=frozenset(TenantRole(role) for role in roles),
        )

    def _failure(self, reason: str, tenant_id: str | None = None) -> AuthenticationError:
        self._probe.authentication_failed(reason=reason, tenant_id=tenant_id)
        return AuthenticationError()

    def _burn_verification(self, secret: str) -> None:
        # Equalize timing between unknown identifiers and wrong secrets.
        if self._dummy_hash is None:
            self._dummy_hash = self._issuer.hash_secret(secrets.token_urlsafe(16))
        self._issuer.verify_secret(secret, self._dummy_hash)
