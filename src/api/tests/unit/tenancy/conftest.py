"""Shared fixtures and in-memory fakes for tenancy unit tests.

The fakes keep just enough state to observe ordering, isolation and
rollback without a database: engine roles and schemas, control-plane
rows, and per-schema tenant tables.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from shared_kernel.auth.jwt_codec import JWTCodec
from tenancy.application.security import CredentialIssuer
from tenancy.application.services import TenantLifecycleGuard, TenantProvisioner
from tenancy.domain.aggregates import Account, TenantRecord, TenantUser, display_name_key
from tenancy.domain.exceptions import (
    ConflictError,
    DuplicateTenantNameError,
    IntegrityError,
    ResourceExistsError,
    TenantNotFoundError,
)
from tenancy.domain.identifiers import validate_identifier
from tenancy.domain.value_objects import (
    ControlPlaneRole,
    TenantId,
    TenantInfoEntry,
    TenantRole,
)
from tenancy.ports.connections import ConnectionDescriptor
from tenancy.ports.repositories import ReservedIdentifier
from tenancy.ports.schema_admin import RoleInfo


class FakeSchemaAdmin:
    """Engine stand-in tracking roles and schemas.

    ``failures`` maps an operation name to the exception it raises.
    """

    def __init__(self):
        self.roles: dict[str, bool] = {}
        self.passwords: dict[str, str] = {}
        self.schemas: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, Exception] = {}
        self._counter = 0

    def _record(self, operation: str, name: str) -> None:
        self.calls.append((operation, name))
        if operation in self.failures:
            raise self.failures[operation]

    async def create_tenant_role(self, role_name: str) -> str:
        validate_identifier(role_name)
        self._record("create_role", role_name)
        if role_name in self.roles:
            raise ResourceExistsError(role_name)
        self._counter += 1
        password = f"Pw{self._counter:030d}!"
        self.roles[role_name] = False
        self.passwords[role_name] = password
        return password

    async def enable_role_login(self, role_name: str) -> None:
        self._record("enable_login", role_name)
        self.roles[role_name] = True

    async def create_schema(self, schema_name: str, owner_role: str) -> None:
        validate_identifier(schema_name)
        self._record("create_schema", schema_name)
        self.schemas[schema_name] = owner_role

    async def grant_schema_access(self, schema_name: str, role_name: str) -> None:
        self._record("grant_access", schema_name)

    async def revoke_all_except(self, role_name, keep_schemas) -> list[str]:
        self._record("revoke", role_name)
        return sorted(name for name in self.schemas if name not in keep_schemas)

    async def set_role_password(self, role_name: str, password: str | None = None) -> str:
        self._record("set_password", role_name)
        self._counter += 1
        password = password or f"Rot{self._counter:029d}!"
        self.passwords[role_name] = password
        return password

    async def drop_schema(self, schema_name: str) -> None:
        self._record("drop_schema", schema_name)
        self.schemas.pop(schema_name, None)

    async def drop_role(self, role_name: str) -> None:
        self._record("drop_role", role_name)
        self.roles.pop(role_name, None)
        self.passwords.pop(role_name, None)

    async def role_exists(self, role_name: str) -> bool:
        return role_name in self.roles

    async def schema_exists(self, schema_name: str) -> bool:
        return schema_name in self.schemas

    async def list_tenant_schemas(self, prefix: str) -> list[str]:
        return sorted(name for name in self.schemas if name.startswith(f"{prefix}_"))

    async def list_tenant_roles(self, prefix: str) -> list[RoleInfo]:
        return [
            RoleInfo(name=name, can_login=login)
            for name, login in sorted(self.roles.items())
            if name.startswith(f"{prefix}_")
        ]


class FakeCipher:
    """Reversible stand-in for the AES-GCM cipher."""

    def encrypt(self, plaintext: str) -> str:
        return f"enc:{plaintext[::-1]}"

    def decrypt(self, blob: str) -> str:
        if not blob.startswith("enc:"):
            raise IntegrityError("tampered")
        return blob[4:][::-1]


class FakeConnection:
    """Marks which tenant and schema a connection was opened for."""

    def __init__(self, tenant_id: str, schema_name: str, transactional: bool):
        self.tenant_id = tenant_id
        self.schema_name = schema_name
        self.transactional = transactional


class FakeTenantStore:
    """Tenant-local tables of one schema.

    Refuses connections opened for any other schema.
    """

    def __init__(self, schema_name: str, tables: dict):
        self._schema_name = schema_name
        self._tables = tables
        self.failures: dict[str, Exception] = {}

    @property
    def schema_name(self) -> str:
        return self._schema_name

    def _check(self, connection: FakeConnection, operation: str) -> dict:
        assert connection.schema_name == self._schema_name, "cross-schema access"
        if operation in self.failures:
            raise self.failures[operation]
        return self._tables.setdefault(self._schema_name, {"users": {}, "info": {}})

    async def bootstrap(self, connection, display_name: str) -> None:
        tables = self._check(connection, "bootstrap")
        tables["info"].setdefault("display_name", display_name)

    async def insert_user(self, connection, user: TenantUser) -> None:
        tables = self._check(connection, "insert_user")
        tables["users"][user.id.value] = user

    async def find_user_by_api_key(self, connection, api_key: str):
        tables = self._check(connection, "find_user")
        for user in tables["users"].values():
            if user.api_key == api_key:
                return user
        return None

    async def find_first_user_with_role(self, connection, role: TenantRole):
        tables = self._check(connection, "find_first_user")
        for user in sorted(tables["users"].values(), key=lambda u: u.created_at):
            if role in user.roles and user.active:
                return user
        return None

    async def update_credentials(self, connection, user_id, api_key, api_secret_hash):
        tables = self._check(connection, "update_credentials")
        user = tables["users"][user_id.value]
        tables["users"][user_id.value] = replace(
            user,
            api_key=api_key,
            api_secret_hash=api_secret_hash,
            updated_at=datetime.now(UTC),
        )

    async def record_login(self, connection, user_id) -> None:
        tables = self._check(connection, "record_login")
        user = tables["users"][user_id.value]
        tables["users"][user_id.value] = replace(user, last_login_at=datetime.now(UTC))

    async def list_info(self, connection) -> list[TenantInfoEntry]:
        tables = self._check(connection, "list_info")
        return [TenantInfoEntry(key=k, value=v) for k, v in sorted(tables["info"].items())]

    async def set_info(self, connection, key: str, value: str) -> TenantInfoEntry:
        tables = self._check(connection, "set_info")
        tables["info"][key] = value
        return TenantInfoEntry(key=key, value=value)


class FakeTenantStores:
    """Factory handing out stores that share one in-memory database."""

    def __init__(self):
        self.tables: dict[str, dict] = {}
        self.failures: dict[str, Exception] = {}

    def __call__(self, schema_name: str) -> FakeTenantStore:
        store = FakeTenantStore(schema_name, self.tables)
        store.failures = self.failures
        return store

    def users(self, schema_name: str) -> dict:
        return self.tables.get(schema_name, {}).get("users", {})

    def info(self, schema_name: str) -> dict:
        return self.tables.get(schema_name, {}).get("info", {})


class FakeTenantRepository:
    """Control-plane tenants table."""

    def __init__(self):
        self.records: dict[str, TenantRecord] = {}
        self.fail_on_save: Exception | None = None

    async def save(self, record: TenantRecord) -> None:
        if self.fail_on_save is not None:
            raise self.fail_on_save
        for other in self.records.values():
            if other.id != record.id and display_name_key(
                other.display_name
            ) == display_name_key(record.display_name):
                raise DuplicateTenantNameError(record.display_name)
        self.records[record.id.value] = replace(record)

    async def get_by_id(self, tenant_id: TenantId):
        record = self.records.get(tenant_id.value)
        return replace(record) if record is not None else None

    async def get_by_display_name(self, name: str):
        for record in self.records.values():
            if display_name_key(record.display_name) == display_name_key(name):
                return replace(record)
        return None

    async def list_by_owner(self, owner_id):
        return sorted(
            (r for r in self.records.values() if r.owner_id == owner_id),
            key=lambda r: r.created_at,
        )

    async def list_all(self):
        return list(self.records.values())

    async def delete(self, tenant_id: TenantId) -> bool:
        return self.records.pop(tenant_id.value, None) is not None


class FakeAccountRepository:
    """Control-plane accounts table."""

    def __init__(self):
        self.accounts: dict[str, Account] = {}

    async def save(self, account: Account) -> None:
        for other in self.accounts.values():
            if other.id != account.id and other.identifier == account.identifier:
                raise ConflictError(account.identifier)
        self.accounts[account.id.value] = account

    async def get_by_id(self, account_id):
        return self.accounts.get(account_id.value)

    async def get_by_identifier(self, identifier: str):
        for account in self.accounts.values():
            if account.identifier == identifier:
                return account
        return None


class FakeIdentifierLedger:
    """Append-only reservation ledger."""

    def __init__(self):
        self.entries: dict[str, ReservedIdentifier] = {}

    async def reserve(self, tenant_id, schema_name, role_name) -> None:
        if schema_name in self.entries or role_name in self.entries:
            raise ConflictError("already reserved")
        now = datetime.now(UTC)
        for kind, name in (("schema", schema_name), ("role", role_name)):
            self.entries[name] = ReservedIdentifier(
                name=name, kind=kind, tenant_id=tenant_id.value, reserved_at=now
            )

    async def get(self, name: str):
        return self.entries.get(name)

    async def list_all(self):
        return list(self.entries.values())


class FakeConnectionBroker:
    """Broker stand-in resolving records from the fake repository."""

    def __init__(self, tenant_repository: FakeTenantRepository, cipher: FakeCipher):
        self._repository = tenant_repository
        self._cipher = cipher
        self.descriptors: dict[str, ConnectionDescriptor] = {}
        self.invalidated: list[str] = []
        self.primed: list[str] = []

    def build_connection_descriptor(self, record: TenantRecord) -> ConnectionDescriptor:
        return ConnectionDescriptor(
            tenant_id=record.id.value,
            host="localhost",
            port=5432,
            database="tenantvault",
            username=record.database_user,
            password=self._cipher.decrypt(record.encrypted_secret),
            schema_name=record.schema_name,
            search_path=(record.schema_name, "public"),
        )

    async def get_or_build_descriptor(self, tenant_id: str) -> ConnectionDescriptor:
        if tenant_id in self.descriptors:
            return self.descriptors[tenant_id]
        record = self._repository.records.get(tenant_id)
        if record is None or not record.active:
            raise TenantNotFoundError(tenant_id)
        descriptor = self.build_connection_descriptor(record)
        self.descriptors[tenant_id] = descriptor
        return descriptor

    async def prime(self, record: TenantRecord) -> ConnectionDescriptor:
        descriptor = self.build_connection_descriptor(record)
        self.descriptors[record.id.value] = descriptor
        self.primed.append(record.id.value)
        return descriptor

    @asynccontextmanager
    async def connect(self, tenant_id: str):
        descriptor = await self.get_or_build_descriptor(tenant_id)
        yield FakeConnection(tenant_id, descriptor.schema_name, transactional=False)

    @asynccontextmanager
    async def transaction(self, tenant_id: str):
        descriptor = await self.get_or_build_descriptor(tenant_id)
        yield FakeConnection(tenant_id, descriptor.schema_name, transactional=True)

    async def invalidate(self, tenant_id: str) -> None:
        self.descriptors.pop(tenant_id, None)
        self.invalidated.append(tenant_id)

    async def validate_connection(self, tenant_id: str) -> bool:
        try:
            await self.get_or_build_descriptor(tenant_id)
        except TenantNotFoundError:
            return False
        return True


@pytest.fixture
def mock_session():
    """Mock AsyncSession."""
    session = Mock(spec=AsyncSession)

    # Create async context manager mock
    ctx_manager = AsyncMock()
    ctx_manager.__aenter__ = AsyncMock(return_value=None)
    ctx_manager.__aexit__ = AsyncMock(return_value=None)

    session.begin = Mock(return_value=ctx_manager)
    return session


@pytest.fixture
def credential_issuer():
    """CredentialIssuer with the minimum bcrypt cost to keep tests fast."""
    return CredentialIssuer(bcrypt_rounds=4)


@pytest.fixture
def schema_admin():
    return FakeSchemaAdmin()


@pytest.fixture
def cipher():
    return FakeCipher()


@pytest.fixture
def tenant_stores():
    return FakeTenantStores()


@pytest.fixture
def tenant_repo():
    return FakeTenantRepository()


@pytest.fixture
def account_repo():
    return FakeAccountRepository()


@pytest.fixture
def ledger():
    return FakeIdentifierLedger()


@pytest.fixture
def broker(tenant_repo, cipher):
    return FakeConnectionBroker(tenant_repo, cipher)


@pytest.fixture
def lifecycle_guard():
    return TenantLifecycleGuard()


@pytest.fixture
def owner_account(account_repo, credential_issuer):
    """An active control-plane account stored in the fake repository."""
    account = Account.create(
        identifier="owner@example.com",
        secret_hash=credential_issuer.hash_secret("owner-secret-123"),
        display_name="Owner",
        roles={ControlPlaneRole.USER},
    )
    account_repo.accounts[account.id.value] = account
    return account


@pytest.fixture
def provisioner(
    mock_session,
    tenant_repo,
    account_repo,
    ledger,
    schema_admin,
    broker,
    tenant_stores,
    credential_issuer,
    cipher,
    lifecycle_guard,
):
    """TenantProvisioner wired to the in-memory fakes."""
    return TenantProvisioner(
        session=mock_session,
        tenant_repository=tenant_repo,
        account_repository=account_repo,
        identifier_ledger=ledger,
        schema_admin=schema_admin,
        connection_broker=broker,
        tenant_store_factory=tenant_stores,
        credential_issuer=credential_issuer,
        secret_cipher=cipher,
        lifecycle_guard=lifecycle_guard,
    )


@pytest.fixture
def token_codec():
    return JWTCodec(
        secret="test-signing-secret",
        issuer="tenantvault-test",
        audience="tenantvault-test",
    )
