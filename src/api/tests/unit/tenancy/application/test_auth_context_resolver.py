"""Unit tests for AuthContextResolver.

Note: Test strings in this file are synthetic test data, not real secrets.
"""
# gitleaks:allow

from datetime import UTC, datetime, timedelta
from unittest.mock import Mock, patch

import pytest
import pytest_asyncio

from tenancy.application.observability import AuthContextResolverProbe
from tenancy.application.services import AuthContextResolver
from tenancy.application.value_objects import ControlPlaneContext, TenantContext
from tenancy.domain.exceptions import AuthenticationError
from tenancy.domain.value_objects import TenantId, TenantRole, TokenType


@pytest.fixture
def mock_probe():
    return Mock(spec=AuthContextResolverProbe)


@pytest.fixture
def resolver(
    mock_session,
    account_repo,
    tenant_repo,
    broker,
    tenant_stores,
    credential_issuer,
    token_codec,
    mock_probe,
):
    return AuthContextResolver(
        session=mock_session,
        account_repository=account_repo,
        tenant_repository=tenant_repo,
        connection_broker=broker,
        tenant_store_factory=tenant_stores,
        credential_issuer=credential_issuer,
        token_codec=token_codec,
        probe=mock_probe,
    )


@pytest_asyncio.fixture
async def acme(provisioner, owner_account):
    return await provisioner.create_tenant("Acme", owner_account.id)


@pytest_asyncio.fixture
async def globex(provisioner, owner_account):
    return await provisioner.create_tenant("Globex", owner_account.id)


class TestControlPlaneAuthentication:
    """Tests for authenticating control-plane accounts."""

    @pytest.mark.asyncio
    async def test_issues_control_plane_token(self, resolver, owner_account):
        token = await resolver.authenticate("Owner@Example.com", "owner-secret-123")

        assert token.token_type is TokenType.CONTROL_PLANE
        context = await resolver.resolve(token.token)
        assert isinstance(context, ControlPlaneContext)
        assert context.account_id == owner_account.id
        assert not hasattr(context, "schema_name")

    @pytest.mark.asyncio
    async def test_wrong_secret_is_generic_failure(self, resolver, owner_account):
        with pytest.raises(AuthenticationError) as exc_info:
            await resolver.authenticate("owner@example.com", "wrong-secret")

        assert str(exc_info.value) == AuthenticationError.GENERIC_MESSAGE

    @pytest.mark.asyncio
    async def test_unknown_account_is_same_generic_failure(self, resolver):
        with pytest.raises(AuthenticationError) as exc_info:
            await resolver.authenticate("nobody@example.com", "whatever")

        assert str(exc_info.value) == AuthenticationError.GENERIC_MESSAGE

    @pytest.mark.asyncio
    async def test_unknown_account_still_runs_a_hash_check(
        self, resolver, credential_issuer
    ):
        """Unknown identifiers cost a bcrypt verify like wrong secrets do."""
        with patch.object(
            credential_issuer, "verify_secret", wraps=credential_issuer.verify_secret
        ) as spy:
            with pytest.raises(AuthenticationError):
                await resolver.authenticate("nobody@example.com", "whatever")

        spy.assert_called_once()

    @pytest.mark.asyncio
    async def test_inactive_account_rejected(self, resolver, owner_account, mock_probe):
        owner_account.active = False

        with pytest.raises(AuthenticationError):
            await resolver.authenticate("owner@example.com", "owner-secret-123")

        assert mock_probe.authentication_failed.call_args.kwargs["reason"] == (
            "inactive_account"
        )

    @pytest.mark.asyncio
    async def test_empty_identifier_rejected(self, resolver):
        with pytest.raises(AuthenticationError):
            await resolver.authenticate("   ", "owner-secret-123")


class TestTenantAuthentication:
    """Tests for authenticating tenant users."""

    @pytest.mark.asyncio
    async def test_issues_tenant_token_naming_schema(self, resolver, acme):
        token = await resolver.authenticate(
            acme.credentials.api_key,
            acme.credentials.api_secret,
            tenant_id=acme.record.id.value,
        )

        assert token.token_type is TokenType.TENANT
        context = await resolver.resolve(token.token)
        assert isinstance(context, TenantContext)
        assert context.tenant_id == acme.record.id
        assert context.schema_name == acme.record.schema_name
        assert context.roles == frozenset({TenantRole.OWNER})

    @pytest.mark.asyncio
    async def test_records_last_login(self, resolver, acme, tenant_stores):
        await resolver.authenticate(
            acme.credentials.api_key,
            acme.credentials.api_secret,
            tenant_id=acme.record.id.value,
        )

        user = next(iter(tenant_stores.users(acme.record.schema_name).values()))
        assert user.last_login_at is not None

    @pytest.mark.asyncio
    async def test_credentials_do_not_cross_tenants(self, resolver, acme, globex):
        """Acme's api key is looked up only inside Globex's schema."""
        with pytest.raises(AuthenticationError):
            await resolver.authenticate(
                acme.credentials.api_key,
                acme.credentials.api_secret,
                tenant_id=globex.record.id.value,
            )

    @pytest.mark.asyncio
    async def test_wrong_secret_rejected(self, resolver, acme):
        with pytest.raises(AuthenticationError):
            await resolver.authenticate(
                acme.credentials.api_key, "wrong", tenant_id=acme.record.id.value
            )

    @pytest.mark.asyncio
    async def test_unknown_tenant_rejected(self, resolver, acme):
        with pytest.raises(AuthenticationError) as exc_info:
            await resolver.authenticate(
                acme.credentials.api_key,
                acme.credentials.api_secret,
                tenant_id=TenantId.generate().value,
            )

        assert str(exc_info.value) == AuthenticationError.GENERIC_MESSAGE

    @pytest.mark.asyncio
    async def test_malformed_tenant_id_rejected(self, resolver):
        with pytest.raises(AuthenticationError):
            await resolver.authenticate("key", "secret", tenant_id="not-a-ulid")

    @pytest.mark.asyncio
    async def test_inactive_tenant_rejected(self, resolver, acme, tenant_repo):
        tenant_repo.records[acme.record.id.value].active = False

        with pytest.raises(AuthenticationError):
            await resolver.authenticate(
                acme.credentials.api_key,
                acme.credentials.api_secret,
                tenant_id=acme.record.id.value,
            )


class TestResolve:
    """Tests for AuthContextResolver.resolve."""

    @pytest.mark.asyncio
    async def test_rejects_garbage(self, resolver, mock_probe):
        with pytest.raises(AuthenticationError):
            await resolver.resolve("not.a.token")

        mock_probe.token_rejected.assert_called_once()

    @pytest.mark.asyncio
    async def test_rejects_expired_token(self, resolver, token_codec, owner_account):
        token, _ = token_codec.encode(
            subject=owner_account.id.value,
            token_type=TokenType.CONTROL_PLANE,
            claims={"identifier": "owner@example.com", "roles": ["user"]},
            now=datetime.now(UTC) - timedelta(hours=2),
        )

        with pytest.raises(AuthenticationError):
            await resolver.resolve(token)

    @pytest.mark.asyncio
    async def test_rejects_control_plane_token_naming_schema(
        self, resolver, token_codec, owner_account, acme
    ):
        token, _ = token_codec.encode(
            subject=owner_account.id.value,
            token_type=TokenType.CONTROL_PLANE,
            claims={
                "identifier": "owner@example.com",
                "roles": ["user"],
                "schema": acme.record.schema_name,
            },
        )

        with pytest.raises(AuthenticationError):
            await resolver.resolve(token)

    @pytest.mark.asyncio
    async def test_rejects_schema_of_another_tenant(
        self, resolver, token_codec, acme, globex
    ):
        token, _ = token_codec.encode(
            subject="01HQZX3Y4K5M6N7P8Q9R0STVWX",
            token_type=TokenType.TENANT,
            claims={
                "tenant_id": acme.record.id.value,
                "schema": globex.record.schema_name,
                "roles": ["owner"],
            },
        )

        with pytest.raises(AuthenticationError):
            await resolver.resolve(token)

    @pytest.mark.asyncio
    async def test_rejects_unknown_role(self, resolver, token_codec, acme):
        token, _ = token_codec.encode(
            subject="01HQZX3Y4K5M6N7P8Q9R0STVWX",
            token_type=TokenType.TENANT,
            claims={
                "tenant_id": acme.record.id.value,
                "schema": acme.record.schema_name,
                "roles": ["root"],
            },
        )

        with pytest.raises(AuthenticationError):
            await resolver.resolve(token)

    @pytest.mark.asyncio
    async def test_rejects_empty_roles(self, resolver, token_codec, owner_account):
        token, _ = token_codec.encode(
            subject=owner_account.id.value,
            token_type=TokenType.CONTROL_PLANE,
            claims={"identifier": "owner@example.com", "roles": []},
        )

        with pytest.raises(AuthenticationError):
            await resolver.resolve(token)

    @pytest.mark.asyncio
    async def test_rejects_token_signed_with_other_key(self, resolver, owner_account):
        from shared_kernel.auth.jwt_codec import JWTCodec

        foreign = JWTCodec(
            secret="another-secret",
            issuer="tenantvault-test",
            audience="tenantvault-test",
        )
        token, _ = foreign.encode(
            subject=owner_account.id.value,
            token_type=TokenType.CONTROL_PLANE,
            claims={"identifier": "owner@example.com", "roles": ["user"]},
        )

        with pytest.raises(AuthenticationError):
            await resolver.resolve(token)
