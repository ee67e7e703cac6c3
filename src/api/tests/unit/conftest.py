"""Unit test fixtures with mocked dependencies."""

import pytest
from pydantic import SecretStr


@pytest.fixture
def mock_db_settings():
    """Provide test database settings."""
    from infrastructure.settings import DatabaseSettings

    return DatabaseSettings(
        host="testhost",
        port=5432,
        database="testdb",
        username="testuser",
        password=SecretStr("testpass"),
    )


@pytest.fixture
def mock_admin_settings():
    """Provide test admin database settings."""
    from infrastructure.settings import AdminDatabaseSettings

    return AdminDatabaseSettings(
        username="testadmin",
        password=SecretStr("adminpass"),
        pool_size=2,
    )
