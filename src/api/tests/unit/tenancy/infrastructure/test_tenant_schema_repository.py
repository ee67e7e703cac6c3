"""Unit tests for TenantSchemaRepository.

The connection is mocked; tests check every statement is qualified with
the repository's own schema and that values travel as bind parameters.
"""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from tenancy.domain.aggregates import TenantUser
from tenancy.domain.exceptions import InvalidIdentifierError
from tenancy.domain.value_objects import TenantRole, TenantUserId
from tenancy.infrastructure.tenant_schema_repository import (
    DISPLAY_NAME_INFO_KEY,
    TenantSchemaRepository,
)
from tenancy.ports.connections import ITenantStore

SCHEMA = "tenant_01hqzx3y4k5m6n7p8q9r0stvwx"


@pytest.fixture
def connection():
    return AsyncMock()


@pytest.fixture
def store():
    return TenantSchemaRepository(SCHEMA)


def executed_sql(connection) -> list[str]:
    return [str(call.args[0]) for call in connection.execute.await_args_list]


def user_row(user_id: str, api_key: str = "KEY") -> dict:
    now = datetime.now(UTC)
    return {
        "id": user_id,
        "api_key": api_key,
        "api_secret_hash": "$2b$04$hash",
        "display_name": "Owner",
        "is_active": True,
        "created_at": now,
        "updated_at": now,
        "last_login_at": None,
    }


def result_with_row(row):
    result = MagicMock()
    result.mappings.return_value.first.return_value = row
    return result


def result_with_rows(rows):
    result = MagicMock()
    result.__iter__.return_value = iter(rows)
    return result


class TestConstruction:
    """Tests for TenantSchemaRepository construction."""

    def test_implements_protocol(self, store):
        assert isinstance(store, ITenantStore)

    def test_exposes_schema_name(self, store):
        assert store.schema_name == SCHEMA

    def test_rejects_invalid_schema(self):
        with pytest.raises(InvalidIdentifierError):
            TenantSchemaRepository('public"; DROP TABLE users; --')


class TestBootstrap:
    """Tests for bootstrap."""

    @pytest.mark.asyncio
    async def test_creates_tables_inside_schema(self, store, connection):
        await store.bootstrap(connection, "Acme")

        statements = executed_sql(connection)
        for table in ("users", "user_roles", "tenant_info", "outlets", "user_outlets"):
            assert any(
                f'CREATE TABLE IF NOT EXISTS "{SCHEMA}".{table} ' in s for s in statements
            )
        ddl = [s for s in statements if "CREATE" in s]
        assert all(f'"{SCHEMA}".' in s for s in ddl)

    @pytest.mark.asyncio
    async def test_seeds_display_name_as_parameter(self, store, connection):
        await store.bootstrap(connection, "Acme'; --")

        last = connection.execute.await_args_list[-1]
        assert "ON CONFLICT (key) DO NOTHING" in str(last.args[0])
        assert last.args[1] == {"key": DISPLAY_NAME_INFO_KEY, "value": "Acme'; --"}


class TestUsers:
    """Tests for user storage."""

    @pytest.mark.asyncio
    async def test_insert_user_writes_roles(self, store, connection):
        user = TenantUser.create(
            api_key="KEY",
            api_secret_hash="hash",
            display_name="Owner",
            roles={TenantRole.OWNER, TenantRole.OPERATOR},
        )

        await store.insert_user(connection, user)

        calls = connection.execute.await_args_list
        assert len(calls) == 3
        assert f'INSERT INTO "{SCHEMA}".users' in str(calls[0].args[0])
        assert calls[0].args[1]["api_key"] == "KEY"
        assert [c.args[1]["role"] for c in calls[1:]] == ["operator", "owner"]

    @pytest.mark.asyncio
    async def test_find_user_returns_none(self, store, connection):
        connection.execute.return_value = result_with_row(None)

        assert await store.find_user_by_api_key(connection, "missing") is None

    @pytest.mark.asyncio
    async def test_find_user_loads_known_active_roles(self, store, connection):
        user_id = TenantUserId.generate().value
        connection.execute.side_effect = [
            result_with_row(user_row(user_id)),
            result_with_rows([("owner",), ("retired_role",)]),
        ]

        user = await store.find_user_by_api_key(connection, "KEY")

        assert user.id.value == user_id
        assert user.roles == frozenset({TenantRole.OWNER})
        assert connection.execute.await_args_list[0].args[1] == {"api_key": "KEY"}

    @pytest.mark.asyncio
    async def test_find_first_owner_joins_roles(self, store, connection):
        user_id = TenantUserId.generate().value
        connection.execute.side_effect = [
            result_with_row(user_row(user_id)),
            result_with_rows([("owner",)]),
        ]

        user = await store.find_first_user_with_role(connection, TenantRole.OWNER)

        sql = executed_sql(connection)[0]
        assert f'JOIN "{SCHEMA}".user_roles' in sql
        assert "ORDER BY u.created_at, u.id LIMIT 1" in sql
        assert user.id.value == user_id

    @pytest.mark.asyncio
    async def test_update_credentials(self, store, connection):
        user_id = TenantUserId.generate()

        await store.update_credentials(connection, user_id, "NEWKEY", "newhash")

        params = connection.execute.await_args.args[1]
        assert params == {"id": user_id.value, "api_key": "NEWKEY", "api_secret_hash": "newhash"}


class TestInfo:
    """Tests for the tenant_info table."""

    @pytest.mark.asyncio
    async def test_list_info(self, store, connection):
        now = datetime.now(UTC)
        connection.execute.return_value = result_with_rows(
            [SimpleNamespace(key="display_name", value="Acme", updated_at=now)]
        )

        entries = await store.list_info(connection)

        assert entries[0].key == "display_name"
        assert entries[0].updated_at == now

    @pytest.mark.asyncio
    async def test_set_info_upserts(self, store, connection):
        now = datetime.now(UTC)
        result = MagicMock()
        result.one.return_value = SimpleNamespace(key="plan", value="gold", updated_at=now)
        connection.execute.return_value = result

        entry = await store.set_info(connection, "plan", "gold")

        assert entry.value == "gold"
        sql = executed_sql(connection)[0]
        assert f'INSERT INTO "{SCHEMA}".tenant_info' in sql
        assert "ON CONFLICT (key) DO UPDATE" in sql
