"""Tenant provisioning application service.

Creates and tears down tenants across two transactional domains: the
control-plane store and the database engine's own DDL. There is no
transaction spanning both, so engine resources are always created before
the control-plane record. A crash mid-way leaves an orphaned schema and
role with no record pointing at them, which the reconciliation sweep can
detect by name, never a record pointing at nothing.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import AbstractContextManager

from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.application.observability import (
    DefaultTenantProvisionerProbe,
    TenantProvisionerProbe,
)
from tenancy.application.security import CredentialIssuer
from tenancy.application.services.lifecycle_guard import (
    TenantLifecycleGuard,
    name_key,
    tenant_key,
)
from tenancy.application.value_objects import (
    CallerContext,
    ControlPlaneContext,
    ProvisionedTenant,
    TenantContext,
    TenantCredentials,
)
from tenancy.domain.aggregates import (
    TenantRecord,
    TenantUser,
    display_name_key,
    normalize_display_name,
)
from tenancy.domain.exceptions import (
    AccountNotFoundError,
    DuplicateTenantNameError,
    NotFoundError,
    ProvisioningError,
    TenancyError,
    TenantBusyError,
    TenantNotFoundError,
    UnauthorizedError,
)
from tenancy.domain.role_lifecycle import RoleLifecycle
from tenancy.domain.value_objects import (
    AccountId,
    TenantId,
    TenantIdentity,
    TenantRole,
)
from tenancy.ports.connections import (
    ISecretCipher,
    ITenantConnectionBroker,
    TenantStoreFactory,
)
from tenancy.ports.repositories import (
    IAccountRepository,
    IIdentifierLedger,
    ITenantRepository,
)
from tenancy.ports.schema_admin import ISchemaAdmin


class TenantProvisioner:
    """Application service for the tenant lifecycle.

    Provisioning order:
    1. Validate the name against the control-plane store
    2. Generate the id and reserve its schema and role names forever
    3. Create the role (no login), its schema, grants, then enable login
    4. Bootstrap the tenant-local tables over a tenant-scoped connection
    5. Insert the owner user with a hashed secret
    6. Persist the tenant record with the encrypted role password

    Any failure in steps 3-6 triggers a best-effort rollback of what
    this call created. Rollback failures are logged, never raised.
    """

    def __init__(
        self,
        session: AsyncSession,
        tenant_repository: ITenantRepository,
        account_repository: IAccountRepository,
        identifier_ledger: IIdentifierLedger,
        schema_admin: ISchemaAdmin,
        connection_broker: ITenantConnectionBroker,
        tenant_store_factory: TenantStoreFactory,
        credential_issuer: CredentialIssuer,
        secret_cipher: ISecretCipher,
        lifecycle_guard: TenantLifecycleGuard,
        schema_prefix: str = "tenant",
        role_prefix: str = "tenant_user",
        probe: TenantProvisionerProbe | None = None,
    ):
        """Initialize TenantProvisioner with dependencies.

        Args:
            session: Control-plane session for transaction management
            tenant_repository: Repository for tenant records
            account_repository: Repository for control-plane accounts
            identifier_ledger: Ledger of reserved schema and role names
            schema_admin: Engine DDL over the administrative pool
            connection_broker: Tenant connection cache
            tenant_store_factory: Builds a store bound to one tenant schema
            credential_issuer: Generates and hashes credentials
            secret_cipher: Encrypts role passwords at rest
            lifecycle_guard: Process-wide per-tenant busy guard
            schema_prefix: Prefix of tenant schema names
            role_prefix: Prefix of tenant role names
            probe: Optional domain probe for observability
        """
        self._session = session
        self._tenant_repository = tenant_repository
        self._account_repository = account_repository
        self._identifier_ledger = identifier_ledger
        self._schema_admin = schema_admin
        self._broker = connection_broker
        self._store_factory = tenant_store_factory
        self._issuer = credential_issuer
        self._cipher = secret_cipher
        self._guard = lifecycle_guard
        self._schema_prefix = schema_prefix
        self._role_prefix = role_prefix
        self._probe = probe or DefaultTenantProvisionerProbe()

    def _claim(self, key: str) -> AbstractContextManager[None]:
        if self._guard.is_busy(key):
            self._probe.tenant_busy(key=key)
            raise TenantBusyError(f"Another operation is in progress for {key}")
        return self._guard.claim(key)

    async def create_tenant(self, name: str, owner_id: AccountId) -> ProvisionedTenant:
        """Provision a new tenant and its owner user.

        Args:
            name: Display name, unique ignoring case
            owner_id: Control-plane account creating the tenant

        Returns:
            The persisted record and the one-time owner credentials

        Raises:
            ValidationError: If the name is empty or too long
            DuplicateTenantNameError: If the name is already taken
            AccountNotFoundError: If the owner account does not exist
            TenantBusyError: If the same name is being provisioned concurrently
            ProvisioningError: If engine-level setup failed
        """
        display_name = normalize_display_name(name)

        with self._claim(name_key(display_name_key(display_name))):
            async with self._session.begin():
                owner = await self._account_repository.get_by_id(owner_id)
                existing = await self._tenant_repository.get_by_display_name(
                    display_name
                )

            if owner is None or not owner.active:
                raise AccountNotFoundError(f"Account {owner_id} not found")
            if existing is not None:
                self._probe.duplicate_tenant_name(name=display_name)
                raise DuplicateTenantNameError(
                    f"Tenant '{display_name}' already exists"
                )

            identity = TenantIdentity.derive(
                TenantId.generate(), self._schema_prefix, self._role_prefix
            )
            async with self._session.begin():
                await self._identifier_ledger.reserve(
                    identity.tenant_id, identity.schema_name, identity.database_user
                )

            with self._claim(tenant_key(identity.tenant_id.value)):
                return await self._provision(identity, display_name, owner_id)

    async def _provision(
        self, identity: TenantIdentity, display_name: str, owner_id: AccountId
    ) -> ProvisionedTenant:
        tenant_id = identity.tenant_id.value
        self._probe.tenant_provisioning_started(
            tenant_id=tenant_id,
            schema_name=identity.schema_name,
            role_name=identity.database_user,
        )
        lifecycle = RoleLifecycle(role_name=identity.database_user)

        try:
            password = await self._schema_admin.create_tenant_role(
                identity.database_user
            )
            lifecycle.mark_created()
            await self._schema_admin.create_schema(
                identity.schema_name, identity.database_user
            )
            lifecycle.mark_schema_created()
            await self._schema_admin.grant_schema_access(
                identity.schema_name, identity.database_user
            )
            await self._schema_admin.enable_role_login(identity.database_user)
            lifecycle.mark_granted()

            record = TenantRecord.create(
                identity=identity,
                display_name=display_name,
                owner_id=owner_id,
                encrypted_secret=self._cipher.encrypt(password),
            )
            credentials = self._new_credentials()
            owner_user = TenantUser.create(
                api_key=credentials.api_key,
                api_secret_hash=self._issuer.hash_secret(credentials.api_secret),
                display_name=display_name,
                roles={TenantRole.OWNER},
            )

            await self._broker.prime(record)
            store = self._store_factory(record.schema_name)
            async with self._broker.transaction(tenant_id) as connection:
                await store.bootstrap(connection, display_name)
                await store.insert_user(connection, owner_user)

            async with self._session.begin():
                await self._tenant_repository.save(record)
            lifecycle.mark_active()

        except Exception as e:
            self._probe.tenant_provisioning_failed(
                tenant_id=tenant_id,
                schema_name=identity.schema_name,
                role_name=identity.database_user,
                error=e,
            )
            await self._rollback(identity, lifecycle)
            if isinstance(e, TenancyError):
                raise
            raise ProvisioningError(
                f"Provisioning tenant {tenant_id} failed: {e}",
                tenant_id=tenant_id,
                schema_name=identity.schema_name,
                role_name=identity.database_user,
            ) from e

        self._probe.tenant_provisioned(
            tenant_id=tenant_id, name=display_name, owner_id=owner_id.value
        )
        return ProvisionedTenant(record=record, credentials=credentials)

    async def _rollback(self, identity: TenantIdentity, lifecycle: RoleLifecycle) -> None:
        tenant_id = identity.tenant_id.value
        steps: list[tuple[str, Callable[[], Awaitable[None]]]] = [
            ("invalidate_cache", lambda: self._broker.invalidate(tenant_id)),
        ]
        if lifecycle.role_exists:
            steps.append(
                ("drop_schema", lambda: self._schema_admin.drop_schema(identity.schema_name))
            )
            steps.append(
                ("drop_role", lambda: self._schema_admin.drop_role(identity.database_user))
            )

        clean = True
        for step, action in steps:
            try:
                await action()
            except Exception as e:
                clean = False
                self._probe.tenant_rollback_failed(
                    tenant_id=tenant_id,
                    schema_name=identity.schema_name,
                    role_name=identity.database_user,
                    step=step,
                    error=e,
                )
        if clean:
            self._probe.tenant_rolled_back(
                tenant_id=tenant_id,
                schema_name=identity.schema_name,
                role_name=identity.database_user,
            )

    async def delete_tenant(self, tenant_id: TenantId) -> bool:
        """Tear down a tenant's schema, role and record.

        Steps run in that order, so a partial failure leaves the record in
        place for a retry. The connection cache is invalidated last, and
        also when a step fails.

        Returns:
            True if the tenant existed and was deleted, False if unknown

        Raises:
            TenantBusyError: If another lifecycle operation holds the tenant
            ProvisioningError: If a DDL step failed
        """
        with self._claim(tenant_key(tenant_id.value)):
            async with self._session.begin():
                record = await self._tenant_repository.get_by_id(tenant_id)

            if record is None:
                self._probe.tenant_not_found(tenant_id=tenant_id.value)
                return False

            try:
                await self._schema_admin.drop_schema(record.schema_name)
                await self._schema_admin.drop_role(record.database_user)
                async with self._session.begin():
                    await self._tenant_repository.delete(tenant_id)
            finally:
                await self._broker.invalidate(tenant_id.value)

            self._probe.tenant_deleted(
                tenant_id=tenant_id.value,
                schema_name=record.schema_name,
                role_name=record.database_user,
            )
            return True

    async def get_tenant(self, tenant_id: TenantId) -> TenantRecord | None:
        """Retrieve a tenant record, or None if unknown."""
        async with self._session.begin():
            record = await self._tenant_repository.get_by_id(tenant_id)
        if record is None:
            self._probe.tenant_not_found(tenant_id=tenant_id.value)
        return record

    async def list_tenants_by_owner(self, owner_id: AccountId) -> list[TenantRecord]:
        """List the tenants an account created."""
        async with self._session.begin():
            return await self._tenant_repository.list_by_owner(owner_id)

    async def reset_tenant_credentials(
        self, caller: CallerContext, tenant_id: TenantId
    ) -> TenantCredentials:
        """Replace the api key and secret of the tenant's owner user.

        Only the tenant user changes; the database role and its cached
        connection material are untouched.

        Args:
            caller: The tenant's owner account, or a caller authenticated
                inside the same tenant
            tenant_id: Tenant whose owner credentials are replaced

        Returns:
            The new plaintext credentials, shown once

        Raises:
            TenantNotFoundError: If the tenant does not exist
            UnauthorizedError: If the caller may not reset this tenant
            NotFoundError: If the tenant has no active owner user
        """
        record = await self._require_tenant(tenant_id)
        self._authorize_reset(caller, record)

        with self._claim(tenant_key(tenant_id.value)):
            store = self._store_factory(record.schema_name)
            credentials = self._new_credentials()
            async with self._broker.transaction(tenant_id.value) as connection:
                owner = await store.find_first_user_with_role(
                    connection, TenantRole.OWNER
                )
                if owner is None:
                    raise NotFoundError(f"Tenant {tenant_id} has no owner user")
                await store.update_credentials(
                    connection,
                    owner.id,
                    credentials.api_key,
                    self._issuer.hash_secret(credentials.api_secret),
                )

        self._probe.tenant_credentials_reset(
            tenant_id=tenant_id.value, user_id=owner.id.value
        )
        return credentials

    def _authorize_reset(self, caller: CallerContext, record: TenantRecord) -> None:
        if isinstance(caller, ControlPlaneContext) and record.is_owned_by(
            caller.account_id
        ):
            return
        if (
            isinstance(caller, TenantContext)
            and caller.tenant_id == record.id
            and caller.schema_name == record.schema_name
        ):
            return
        raise UnauthorizedError(
            f"Caller may not reset credentials of tenant {record.id}"
        )

    async def rotate_database_secret(self, tenant_id: TenantId) -> TenantRecord:
        """Give the tenant role a new password and re-encrypt it.

        The cached descriptor always gets invalidated, whether or not
        the rotation succeeds. If the record cannot be saved, the previous
        password is restored on the role.

        Raises:
            TenantNotFoundError: If the tenant does not exist
            ProvisioningError: If the role password could not be changed
        """
        with self._claim(tenant_key(tenant_id.value)):
            record = await self._require_tenant(tenant_id)
            previous_secret = record.encrypted_secret
            try:
                password = await self._schema_admin.set_role_password(
                    record.database_user
                )
                record.replace_secret(self._cipher.encrypt(password))
                try:
                    async with self._session.begin():
                        await self._tenant_repository.save(record)
                except Exception:
                    await self._schema_admin.set_role_password(
                        record.database_user,
                        password=self._cipher.decrypt(previous_secret),
                    )
                    raise
            finally:
                await self._broker.invalidate(tenant_id.value)

        self._probe.database_secret_rotated(
            tenant_id=tenant_id.value, role_name=record.database_user
        )
        return record

    async def set_tenant_active(self, tenant_id: TenantId, active: bool) -> TenantRecord:
        """Activate or soft-disable a tenant without touching its resources.

        Deactivation invalidates cached connection material so new
        tenant connections are refused.

        Raises:
            TenantNotFoundError: If the tenant does not exist
        """
        async with self._session.begin():
            record = await self._tenant_repository.get_by_id(tenant_id)
            if record is None:
                self._probe.tenant_not_found(tenant_id=tenant_id.value)
                raise TenantNotFoundError(f"Tenant {tenant_id} not found")
            record.set_active(active)
            await self._tenant_repository.save(record)

        if not active:
            await self._broker.invalidate(tenant_id.value)
        self._probe.tenant_activation_changed(tenant_id=tenant_id.value, active=active)
        return record

    async def quarantine_tenant(self, tenant_id: TenantId) -> list[str]:
        """Deactivate a tenant and confine its role to its own schema.

        Returns:
            Schemas the role lost privileges on
        """
        record = await self.set_tenant_active(tenant_id, active=False)
        revoked = await self._schema_admin.revoke_all_except(
            record.database_user, [record.schema_name]
        )
        self._probe.tenant_quarantined(
            tenant_id=tenant_id.value, revoked_schemas=revoked
        )
        return revoked

    async def _require_tenant(self, tenant_id: TenantId) -> TenantRecord:
        record = await self.get_tenant(tenant_id)
        if record is None:
            raise TenantNotFoundError(f"Tenant {tenant_id} not found")
        return record

    def _new_credentials(self) -> TenantCredentials:
        return TenantCredentials(
            api_key=self._issuer.generate_api_key(),
            api_secret=self._issuer.generate_api_secret(),
        )
