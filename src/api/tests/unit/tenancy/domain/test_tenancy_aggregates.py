"""Unit tests for tenancy aggregates."""

from datetime import UTC, datetime

import pytest

from tenancy.domain.aggregates import (
    MAX_DISPLAY_NAME_LENGTH,
    Account,
    TenantRecord,
    TenantUser,
    display_name_key,
    normalize_account_identifier,
    normalize_display_name,
)
from tenancy.domain.exceptions import ValidationError
from tenancy.domain.value_objects import (
    AccountId,
    ControlPlaneRole,
    TenantId,
    TenantIdentity,
)


@pytest.fixture
def identity():
    return TenantIdentity.derive(TenantId.generate(), "tenant", "tenant_user")


class TestDisplayNames:
    """Tests for display name normalization."""

    def test_strips_whitespace(self):
        assert normalize_display_name("  Acme  ") == "Acme"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_rejects_empty(self, name):
        with pytest.raises(ValidationError):
            normalize_display_name(name)

    def test_rejects_too_long(self):
        with pytest.raises(ValidationError):
            normalize_display_name("x" * (MAX_DISPLAY_NAME_LENGTH + 1))

    def test_key_ignores_case(self):
        assert display_name_key("Acme Corp") == display_name_key("ACME corp ")


class TestTenantRecord:
    """Tests for TenantRecord."""

    def test_create_copies_identity(self, identity):
        owner = AccountId.generate()

        record = TenantRecord.create(
            identity=identity,
            display_name=" Acme ",
            owner_id=owner,
            encrypted_secret="blob",
        )

        assert record.id == identity.tenant_id
        assert record.schema_name == identity.schema_name
        assert record.database_user == identity.database_user
        assert record.display_name == "Acme"
        assert record.active is True
        assert record.is_owned_by(owner)
        assert record.created_at == record.updated_at

    def test_repr_hides_secret(self, identity):
        record = TenantRecord.create(
            identity=identity,
            display_name="Acme",
            owner_id=AccountId.generate(),
            encrypted_secret="very-secret-blob",
        )

        assert "very-secret-blob" not in repr(record)

    def test_replace_secret_touches_updated_at(self, identity):
        record = TenantRecord.create(
            identity=identity,
            display_name="Acme",
            owner_id=AccountId.generate(),
            encrypted_secret="old",
        )
        record.updated_at = datetime(2020, 1, 1, tzinfo=UTC)

        record.replace_secret("new")

        assert record.encrypted_secret == "new"
        assert record.updated_at > datetime(2020, 1, 1, tzinfo=UTC)

    def test_set_active(self, identity):
        record = TenantRecord.create(
            identity=identity,
            display_name="Acme",
            owner_id=AccountId.generate(),
            encrypted_secret="blob",
        )

        record.set_active(False)

        assert record.active is False


class TestTenantUser:
    """Tests for TenantUser."""

    def test_requires_a_role(self):
        with pytest.raises(ValidationError):
            TenantUser.create(
                api_key="key", api_secret_hash="hash", display_name="x", roles=set()
            )


class TestAccount:
    """Tests for Account."""

    def test_normalizes_identifier(self):
        account = Account.create(
            identifier="  Alice@Example.COM ",
            secret_hash="hash",
            display_name="",
            roles={ControlPlaneRole.USER},
        )

        assert account.identifier == "alice@example.com"
        assert account.display_name == "alice@example.com"

    def test_rejects_empty_identifier(self):
        with pytest.raises(ValidationError):
            normalize_account_identifier("   ")

    def test_requires_a_role(self):
        with pytest.raises(ValidationError):
            Account.create(
                identifier="alice", secret_hash="hash", display_name="", roles=set()
            )
