"""Integration tests for the tenant lifecycle against PostgreSQL.

Covers provisioning, tenant-scoped authentication, engine-level
isolation between tenants and teardown.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from tenancy.presentation.models import (
    CreateTenantResponse,
    OperationFailure,
    TokenResponse,
)

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


async def create(open_api, created_tenants, name, owner_id) -> CreateTenantResponse:
    async with open_api() as api:
        response = await api.create_tenant(name, owner_id)
    assert isinstance(response, CreateTenantResponse)
    created_tenants.append(response.tenant_id)
    return response


async def tenant_context(open_api, provisioned: CreateTenantResponse):
    async with open_api() as api:
        token = await api.authenticate(
            provisioned.api_key, provisioned.api_secret, provisioned.tenant_id
        )
        assert isinstance(token, TokenResponse)
        return await api.resolve_context(token.token)


class TestProvisioning:
    """Tests for tenant creation and deletion."""

    async def test_creates_schema_and_login_role(
        self, open_api, created_tenants, owner_account, schema_admin
    ):
        provisioned = await create(
            open_api, created_tenants, "Integration Acme", owner_account.id.value
        )

        async with open_api() as api:
            record = await api.get_tenant(provisioned.tenant_id)

        assert await schema_admin.schema_exists(record.schema_name)
        roles = await schema_admin.list_tenant_roles("tenant_user")
        assert any(r.name == record.database_user and r.can_login for r in roles)

    async def test_duplicate_name_is_rejected(
        self, open_api, created_tenants, owner_account
    ):
        await create(open_api, created_tenants, "Integration Dup", owner_account.id.value)

        async with open_api() as api:
            response = await api.create_tenant("integration dup", owner_account.id.value)

        assert isinstance(response, OperationFailure)
        assert response.code == "validation_error"

    async def test_delete_drops_engine_resources(
        self, open_api, owner_account, schema_admin
    ):
        async with open_api() as api:
            provisioned = await api.create_tenant(
                "Integration Doomed", owner_account.id.value
            )
            record = await api.get_tenant(provisioned.tenant_id)

        async with open_api() as api:
            response = await api.delete_tenant(provisioned.tenant_id)

        assert response.deleted is True
        assert not await schema_admin.schema_exists(record.schema_name)
        assert not await schema_admin.role_exists(record.database_user)


class TestTenantAccess:
    """Tests for authentication and isolation between tenants."""

    async def test_owner_reads_seeded_info(self, open_api, created_tenants, owner_account):
        provisioned = await create(
            open_api, created_tenants, "Integration Info", owner_account.id.value
        )
        context = await tenant_context(open_api, provisioned)

        async with open_api() as api:
            await api.set_tenant_info(context, "plan", "gold")
            entries = await api.get_tenant_info(context)

        assert {(e.key, e.value) for e in entries} >= {
            ("display_name", "Integration Info"),
            ("plan", "gold"),
        }

    async def test_info_is_isolated(self, open_api, created_tenants, owner_account):
        first = await create(
            open_api, created_tenants, "Integration Left", owner_account.id.value
        )
        second = await create(
            open_api, created_tenants, "Integration Right", owner_account.id.value
        )
        left = await tenant_context(open_api, first)
        right = await tenant_context(open_api, second)

        async with open_api() as api:
            await api.set_tenant_info(left, "plan", "gold")
            right_entries = await api.get_tenant_info(right)

        assert "plan" not in {e.key for e in right_entries}

    async def test_tenant_role_cannot_read_other_schema(
        self, open_api, created_tenants, owner_account, connection_broker
    ):
        first = await create(
            open_api, created_tenants, "Integration Alpha", owner_account.id.value
        )
        second = await create(
            open_api, created_tenants, "Integration Beta", owner_account.id.value
        )

        async with connection_broker.connect(first.tenant_id) as connection:
            search_path = (await connection.execute(text("SHOW search_path"))).scalar()
            assert first.schema_name in search_path
            with pytest.raises(DBAPIError):
                await connection.execute(
                    text(f'SELECT count(*) FROM "{second.schema_name}".users')
                )

    async def test_credentials_of_one_tenant_fail_on_another(
        self, open_api, created_tenants, owner_account
    ):
        first = await create(
            open_api, created_tenants, "Integration One", owner_account.id.value
        )
        second = await create(
            open_api, created_tenants, "Integration Two", owner_account.id.value
        )

        async with open_api() as api:
            response = await api.authenticate(
                first.api_key, first.api_secret, second.tenant_id
            )

        assert isinstance(response, OperationFailure)
        assert response.code == "authentication_failed"

    async def test_reset_credentials_replaces_secret(
        self, open_api, created_tenants, owner_account
    ):
        provisioned = await create(
            open_api, created_tenants, "Integration Reset", owner_account.id.value
        )
        context = await tenant_context(open_api, provisioned)

        async with open_api() as api:
            credentials = await api.reset_tenant_credentials(
                context, provisioned.tenant_id
            )
            stale = await api.authenticate(
                provisioned.api_key, provisioned.api_secret, provisioned.tenant_id
            )
            fresh = await api.authenticate(
                credentials.api_key, credentials.api_secret, provisioned.tenant_id
            )

        assert isinstance(stale, OperationFailure)
        assert isinstance(fresh, TokenResponse)
