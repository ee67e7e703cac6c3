"""Integration test fixtures for database tests.

These fixtures require a running PostgreSQL instance and a superuser
(or CREATEROLE) admin role. Use docker-compose for testing.
"""

import os
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import pytest
import pytest_asyncio
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from ulid import ULID

from infrastructure.database.engines import (
    create_admin_engine,
    create_control_plane_engine,
)
from infrastructure.database.models import Base
from infrastructure.settings import AdminDatabaseSettings, DatabaseSettings
from shared_kernel.auth import JWTCodec
from tenancy.application.security import CredentialIssuer
from tenancy.application.services import (
    AccountService,
    AuthContextResolver,
    TenantInfoService,
    TenantLifecycleGuard,
    TenantProvisioner,
)
from tenancy.dependencies import make_tenant_record_loader
from tenancy.domain.aggregates import Account
from tenancy.infrastructure.account_repository import AccountRepository
from tenancy.infrastructure.connection_broker import ConnectionBroker
from tenancy.infrastructure.identifier_ledger import IdentifierLedger
from tenancy.infrastructure.schema_admin import PostgresSchemaAdmin
from tenancy.infrastructure.secret_cipher import KEY_LENGTH, AesGcmSecretCipher
from tenancy.infrastructure.tenant_repository import TenantRepository
import tenancy.infrastructure.models  # noqa: F401
from tenancy.infrastructure.tenant_schema_repository import TenantSchemaRepository
from tenancy.presentation.api import TenancyAPI

OWNER_SECRET = "integration-owner-secret"  # gitleaks:allow


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires database)",
    )


@pytest.fixture(scope="session")
def integration_db_settings() -> DatabaseSettings:
    """Database settings for integration tests.

    Override with environment variables:
        TENANTVAULT_DB_HOST, TENANTVAULT_DB_PORT, etc.
    """
    return DatabaseSettings(
        host=os.getenv("TENANTVAULT_DB_HOST", "localhost"),
        port=int(os.getenv("TENANTVAULT_DB_PORT", "5432")),
        database=os.getenv("TENANTVAULT_DB_DATABASE", "tenantvault"),
        username=os.getenv("TENANTVAULT_DB_USERNAME", "tenantvault"),
        password=SecretStr(
            os.getenv("TENANTVAULT_DB_PASSWORD", "tenantvault_dev_password")
        ),
        pool_min_connections=1,
        pool_max_connections=2,
    )


@pytest.fixture(scope="session")
def integration_admin_settings() -> AdminDatabaseSettings:
    """Admin role settings for integration tests.

    Override with TENANTVAULT_ADMIN_DB_USERNAME and TENANTVAULT_ADMIN_DB_PASSWORD.
    """
    return AdminDatabaseSettings(
        username=os.getenv("TENANTVAULT_ADMIN_DB_USERNAME", "postgres"),
        password=SecretStr(
            os.getenv("TENANTVAULT_ADMIN_DB_PASSWORD", "postgres_dev_password")
        ),
        pool_size=2,
    )


@pytest_asyncio.fixture
async def control_plane_engine(
    integration_db_settings: DatabaseSettings,
) -> AsyncIterator[AsyncEngine]:
    """Control-plane engine with the metadata tables in place."""
    engine = create_control_plane_engine(integration_db_settings)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def admin_engine(
    integration_db_settings: DatabaseSettings,
    integration_admin_settings: AdminDatabaseSettings,
) -> AsyncIterator[AsyncEngine]:
    """Privileged engine used for tenant DDL."""
    engine = create_admin_engine(integration_db_settings, integration_admin_settings)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(control_plane_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(control_plane_engine, expire_on_commit=False)


@pytest.fixture
def credential_issuer() -> CredentialIssuer:
    return CredentialIssuer(bcrypt_rounds=4)


@pytest.fixture
def token_codec() -> JWTCodec:
    return JWTCodec(
        secret="integration-signing-secret",  # gitleaks:allow
        issuer="tenantvault-test",
        audience="tenantvault-test",
    )


@pytest.fixture
def schema_admin(
    admin_engine: AsyncEngine,
    integration_admin_settings: AdminDatabaseSettings,
    credential_issuer: CredentialIssuer,
) -> PostgresSchemaAdmin:
    return PostgresSchemaAdmin(
        engine=admin_engine,
        password_generator=credential_issuer.generate_role_password,
        reassign_owned_to=integration_admin_settings.reassign_target,
    )


@pytest.fixture
def secret_cipher() -> AesGcmSecretCipher:
    """Fresh random key; tenants are created per test."""
    return AesGcmSecretCipher(os.urandom(KEY_LENGTH))


@pytest_asyncio.fixture
async def connection_broker(
    integration_db_settings: DatabaseSettings,
    sessionmaker: async_sessionmaker[AsyncSession],
    secret_cipher: AesGcmSecretCipher,
) -> AsyncIterator[ConnectionBroker]:
    broker = ConnectionBroker(
        settings=integration_db_settings,
        cipher=secret_cipher,
        record_loader=make_tenant_record_loader(sessionmaker),
        pool_size=2,
    )
    yield broker
    await broker.close()


@pytest.fixture
def open_api(
    sessionmaker: async_sessionmaker[AsyncSession],
    schema_admin: PostgresSchemaAdmin,
    connection_broker: ConnectionBroker,
    secret_cipher: AesGcmSecretCipher,
    credential_issuer: CredentialIssuer,
    token_codec: JWTCodec,
) -> Callable[[], AbstractAsyncContextManager[TenancyAPI]]:
    """Factory opening a TenancyAPI bound to a fresh session."""
    guard = TenantLifecycleGuard()

    @asynccontextmanager
    async def open_() -> AsyncIterator[TenancyAPI]:
        async with sessionmaker() as session:
            yield TenancyAPI(
                provisioner=TenantProvisioner(
                    session=session,
                    tenant_repository=TenantRepository(session=session),
                    account_repository=AccountRepository(session=session),
                    identifier_ledger=IdentifierLedger(session=session),
                    schema_admin=schema_admin,
                    connection_broker=connection_broker,
                    tenant_store_factory=TenantSchemaRepository,
                    credential_issuer=credential_issuer,
                    secret_cipher=secret_cipher,
                    lifecycle_guard=guard,
                ),
                resolver=AuthContextResolver(
                    session=session,
                    account_repository=AccountRepository(session=session),
                    tenant_repository=TenantRepository(session=session),
                    connection_broker=connection_broker,
                    tenant_store_factory=TenantSchemaRepository,
                    credential_issuer=credential_issuer,
                    token_codec=token_codec,
                ),
                info_service=TenantInfoService(
                    connection_broker=connection_broker,
                    tenant_store_factory=TenantSchemaRepository,
                ),
            )

    return open_


@pytest_asyncio.fixture
async def owner_account(
    sessionmaker: async_sessionmaker[AsyncSession],
    credential_issuer: CredentialIssuer,
) -> Account:
    """A control-plane account with a unique identifier."""
    async with sessionmaker() as session:
        service = AccountService(
            session=session,
            account_repository=AccountRepository(session=session),
            credential_issuer=credential_issuer,
        )
        return await service.register_account(
            identifier=f"owner-{str(ULID()).lower()}@example.com",
            secret=OWNER_SECRET,
            display_name="Integration Owner",
        )


@pytest_asyncio.fixture
async def created_tenants(open_api) -> AsyncIterator[list[str]]:
    """Collect tenant ids created by a test and tear them down afterwards."""
    tenant_ids: list[str] = []
    yield tenant_ids
    for tenant_id in tenant_ids:
        async with open_api() as api:
            await api.delete_tenant(tenant_id)
