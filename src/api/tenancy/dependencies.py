"""Wiring for the tenancy bounded context.

Process-wide collaborators (cipher, issuer, codec, schema admin,
connection broker, lifecycle guard) are built once from settings.
Services that need a control-plane session are built per unit of work
by ``tenancy_api()``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from infrastructure.database.dependencies import (
    close_database_connections,
    get_admin_engine,
    get_control_plane_sessionmaker,
)
from infrastructure.settings import (
    get_admin_database_settings,
    get_auth_settings,
    get_database_settings,
    get_settings,
    get_tenancy_settings,
)
from shared_kernel.auth import JWTCodec
from tenancy.application.security import CredentialIssuer
from tenancy.application.services import (
    AccountService,
    AuthContextResolver,
    ReconciliationService,
    TenantInfoService,
    TenantLifecycleGuard,
    TenantProvisioner,
)
from tenancy.domain.aggregates import TenantRecord
from tenancy.domain.value_objects import TenantId
from tenancy.infrastructure.account_repository import AccountRepository
from tenancy.infrastructure.connection_broker import ConnectionBroker, RecordLoader
from tenancy.infrastructure.identifier_ledger import IdentifierLedger
from tenancy.infrastructure.schema_admin import PostgresSchemaAdmin
from tenancy.infrastructure.secret_cipher import AesGcmSecretCipher
from tenancy.infrastructure.tenant_repository import TenantRepository
from tenancy.infrastructure.tenant_schema_repository import TenantSchemaRepository
from tenancy.presentation.api import TenancyAPI


def make_tenant_record_loader(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> RecordLoader:
    """Build a loader that reads a tenant record in its own session."""

    async def load(tenant_id: str) -> TenantRecord | None:
        try:
            tid = TenantId.from_string(tenant_id)
        except ValueError:
            return None
        async with sessionmaker() as session:
            async with session.begin():
                return await TenantRepository(session=session).get_by_id(tid)

    return load


@lru_cache
def get_secret_cipher() -> AesGcmSecretCipher:
    """Get the tenant secret cipher (singleton)."""
    return AesGcmSecretCipher.from_settings(get_tenancy_settings(), get_settings())


@lru_cache
def get_credential_issuer() -> CredentialIssuer:
    """Get the credential issuer (singleton)."""
    return CredentialIssuer(bcrypt_rounds=get_tenancy_settings().bcrypt_rounds)


@lru_cache
def get_jwt_codec() -> JWTCodec:
    """Get the token codec (singleton).

    Raises:
        ValueError: If no signing secret is configured
    """
    settings = get_auth_settings()
    return JWTCodec(
        secret=settings.jwt_secret.get_secret_value(),
        issuer=settings.issuer,
        audience=settings.audience,
        algorithm=settings.algorithm,
        ttl=timedelta(minutes=settings.token_ttl_minutes),
    )


@lru_cache
def get_schema_admin() -> PostgresSchemaAdmin:
    """Get the schema administrator bound to the admin engine (singleton)."""
    tenancy_settings = get_tenancy_settings()
    return PostgresSchemaAdmin(
        engine=get_admin_engine(),
        password_generator=get_credential_issuer().generate_role_password,
        reassign_owned_to=get_admin_database_settings().reassign_target,
        default_schema=tenancy_settings.default_schema,
    )


@lru_cache
def get_connection_broker() -> ConnectionBroker:
    """Get the tenant connection broker (singleton)."""
    settings = get_database_settings()
    return ConnectionBroker(
        settings=settings,
        cipher=get_secret_cipher(),
        record_loader=make_tenant_record_loader(get_control_plane_sessionmaker()),
        default_schema=get_tenancy_settings().default_schema,
        pool_size=settings.tenant_pool_size,
    )


@lru_cache
def get_lifecycle_guard() -> TenantLifecycleGuard:
    """Get the process-wide lifecycle guard (singleton)."""
    return TenantLifecycleGuard()


def build_tenant_provisioner(session: AsyncSession) -> TenantProvisioner:
    """Build a TenantProvisioner bound to a control-plane session."""
    tenancy_settings = get_tenancy_settings()
    return TenantProvisioner(
        session=session,
        tenant_repository=TenantRepository(session=session),
        account_repository=AccountRepository(session=session),
        identifier_ledger=IdentifierLedger(session=session),
        schema_admin=get_schema_admin(),
        connection_broker=get_connection_broker(),
        tenant_store_factory=TenantSchemaRepository,
        credential_issuer=get_credential_issuer(),
        secret_cipher=get_secret_cipher(),
        lifecycle_guard=get_lifecycle_guard(),
        schema_prefix=tenancy_settings.schema_prefix,
        role_prefix=tenancy_settings.role_prefix,
    )


def build_auth_context_resolver(session: AsyncSession) -> AuthContextResolver:
    """Build an AuthContextResolver bound to a control-plane session."""
    return AuthContextResolver(
        session=session,
        account_repository=AccountRepository(session=session),
        tenant_repository=TenantRepository(session=session),
        connection_broker=get_connection_broker(),
        tenant_store_factory=TenantSchemaRepository,
        credential_issuer=get_credential_issuer(),
        token_codec=get_jwt_codec(),
    )


def build_account_service(session: AsyncSession) -> AccountService:
    """Build an AccountService bound to a control-plane session."""
    return AccountService(
        session=session,
        account_repository=AccountRepository(session=session),
        credential_issuer=get_credential_issuer(),
    )


def build_reconciliation_service(session: AsyncSession) -> ReconciliationService:
    """Build a ReconciliationService bound to a control-plane session."""
    tenancy_settings = get_tenancy_settings()
    return ReconciliationService(
        session=session,
        tenant_repository=TenantRepository(session=session),
        identifier_ledger=IdentifierLedger(session=session),
        schema_admin=get_schema_admin(),
        schema_prefix=tenancy_settings.schema_prefix,
        role_prefix=tenancy_settings.role_prefix,
        grace_period=timedelta(minutes=tenancy_settings.reconcile_grace_minutes),
    )


@asynccontextmanager
async def tenancy_api() -> AsyncIterator[TenancyAPI]:
    """Provide a TenancyAPI bound to a fresh control-plane session."""
    async with get_control_plane_sessionmaker()() as session:
        yield TenancyAPI(
            provisioner=build_tenant_provisioner(session),
            resolver=build_auth_context_resolver(session),
            info_service=TenantInfoService(
                connection_broker=get_connection_broker(),
                tenant_store_factory=TenantSchemaRepository,
            ),
        )


async def close_tenancy_resources() -> None:
    """Dispose tenant engines, then the shared engines.

    Should be called on application shutdown.
    """
    if get_connection_broker.cache_info().currsize:
        await get_connection_broker().close()
        get_connection_broker.cache_clear()
    get_schema_admin.cache_clear()
    await close_database_connections()
