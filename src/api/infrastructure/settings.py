"""Application settings using pydantic-settings.

Settings are loaded from environment variables with sensible defaults
for development. Production deployments should set all values explicitly.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tenancy.domain.exceptions import InvalidIdentifierError
from tenancy.domain.identifiers import validate_prefix


class DatabaseSettings(BaseSettings):
    """Control-plane database connection settings.

    The same host, port and database are used for tenant connections;
    only the role and search path differ per tenant.

    Environment variables:
        TENANTVAULT_DB_HOST: Database host (default: localhost)
        TENANTVAULT_DB_PORT: Database port (default: 5432)
        TENANTVAULT_DB_DATABASE: Database name (default: tenantvault)
        TENANTVAULT_DB_USERNAME: Control-plane user (default: tenantvault)
        TENANTVAULT_DB_PASSWORD: Control-plane password (required in production)
        TENANTVAULT_DB_POOL_MIN_CONNECTIONS: Minimum connections in pool (default: 2)
        TENANTVAULT_DB_POOL_MAX_CONNECTIONS: Maximum connections in pool (default: 10)
        TENANTVAULT_DB_TENANT_POOL_SIZE: Pool size of each tenant engine (default: 5)
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANTVAULT_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="tenantvault", description="Database name")
    username: str = Field(default="tenantvault", description="Database username")
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password",
    )
    pool_min_connections: int = Field(
        default=2,
        description="Minimum connections in pool",
        ge=1,
        le=100,
    )
    pool_max_connections: int = Field(
        default=10,
        description="Maximum connections in pool",
        ge=1,
        le=100,
    )
    tenant_pool_size: int = Field(
        default=5,
        description="Connection pool size of each per-tenant engine",
        ge=1,
        le=50,
    )

    @model_validator(mode="after")
    def validate_pool_settings(self) -> "DatabaseSettings":
        """Validate pool max >= min."""
        if self.pool_max_connections < self.pool_min_connections:
            raise ValueError(
                f"pool_max_connections ({self.pool_max_connections}) must be >= "
                f"pool_min_connections ({self.pool_min_connections})"
            )
        return self

    @property
    def connection_string(self) -> str:
        """Generate a connection string (without password for logging)."""
        return f"postgresql://{self.username}@{self.host}:{self.port}/{self.database}"


class AdminDatabaseSettings(BaseSettings):
    """Credentials of the privileged role that runs tenant DDL.

    The admin pool is small and separate from tenant pools, so tenant
    workloads cannot starve provisioning.

    Environment variables:
        TENANTVAULT_ADMIN_DB_USERNAME: Admin role (default: postgres)
        TENANTVAULT_ADMIN_DB_PASSWORD: Admin password
        TENANTVAULT_ADMIN_DB_POOL_SIZE: Admin pool size (default: 2)
        TENANTVAULT_ADMIN_DB_REASSIGN_OWNED_TO: Role that inherits objects
            owned by dropped tenant roles (default: the admin role)
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANTVAULT_ADMIN_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    username: str = Field(default="postgres", description="Admin role name")
    password: SecretStr = Field(default=SecretStr(""), description="Admin password")
    pool_size: int = Field(default=2, description="Admin pool size", ge=1, le=10)
    reassign_owned_to: str | None = Field(
        default=None,
        description="Role receiving objects owned by a dropped tenant role",
    )

    @property
    def reassign_target(self) -> str:
        """Role used by REASSIGN OWNED when dropping tenant roles."""
        return self.reassign_owned_to or self.username


class TenancySettings(BaseSettings):
    """Tenant provisioning settings.

    Environment variables:
        TENANTVAULT_TENANCY_SCHEMA_PREFIX: Prefix of tenant schemas (default: tenant)
        TENANTVAULT_TENANCY_ROLE_PREFIX: Prefix of tenant roles (default: tenant_user)
        TENANTVAULT_TENANCY_DEFAULT_SCHEMA: Neutral search path fallback (default: public)
        TENANTVAULT_TENANCY_SECRET_KEY: Base64 AES-256 key for tenant role passwords
        TENANTVAULT_TENANCY_ALLOW_INSECURE_DEV_KEY: Derive a key from the host name
            when no key is configured (development only)
        TENANTVAULT_TENANCY_BCRYPT_ROUNDS: bcrypt cost factor (default: 12)
        TENANTVAULT_TENANCY_RECONCILE_GRACE_MINUTES: Minimum age of an orphan before
            the reconciliation sweep may drop it (default: 60)
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANTVAULT_TENANCY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    schema_prefix: str = Field(default="tenant", description="Tenant schema prefix")
    role_prefix: str = Field(default="tenant_user", description="Tenant role prefix")
    default_schema: str = Field(
        default="public",
        description="Schema appended to every tenant search path",
    )
    secret_key: SecretStr | None = Field(
        default=None,
        description="Base64 encoded 32 byte key for tenant secrets",
    )
    allow_insecure_dev_key: bool = Field(
        default=False,
        description="Allow a host-derived key in development",
    )
    bcrypt_rounds: int = Field(default=12, description="bcrypt cost", ge=4, le=31)
    reconcile_grace_minutes: int = Field(
        default=60,
        description="Minimum orphan age before garbage collection",
        ge=0,
    )

    @field_validator("schema_prefix", "role_prefix", "default_schema")
    @classmethod
    def validate_identifier_prefix(cls, value: str) -> str:
        """Reject prefixes that could not form a safe identifier."""
        try:
            return validate_prefix(value)
        except InvalidIdentifierError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def validate_distinct_prefixes(self) -> "TenancySettings":
        """Schema and role prefixes must not collide."""
        if self.schema_prefix == self.role_prefix:
            raise ValueError("schema_prefix and role_prefix must differ")
        return self


class AuthSettings(BaseSettings):
    """Token signing settings for control-plane and tenant tokens.

    Environment variables:
        TENANTVAULT_AUTH_JWT_SECRET: HMAC signing secret (required)
        TENANTVAULT_AUTH_ISSUER: Token issuer (default: tenantvault)
        TENANTVAULT_AUTH_AUDIENCE: Token audience (default: tenantvault-api)
        TENANTVAULT_AUTH_TOKEN_TTL_MINUTES: Token lifetime (default: 60)
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANTVAULT_AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: SecretStr = Field(
        default=SecretStr(""),
        description="HMAC secret used to sign tokens",
    )
    issuer: str = Field(default="tenantvault", description="Token issuer")
    audience: str = Field(default="tenantvault-api", description="Token audience")
    algorithm: Literal["HS256", "HS384", "HS512"] = Field(
        default="HS256",
        description="Signing algorithm",
    )
    token_ttl_minutes: int = Field(
        default=60,
        description="Token lifetime in minutes",
        ge=1,
        le=24 * 60,
    )


class Settings(BaseSettings):
    """Main application settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_prefix="TENANTVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="tenantvault", description="Application name")
    environment: Literal["development", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    debug: bool = Field(default=False, description="Debug mode")

    @property
    def database(self) -> DatabaseSettings:
        """Get database settings."""
        return get_database_settings()

    @property
    def is_production(self) -> bool:
        """Whether the application runs in production."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Get cached database settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return DatabaseSettings()


@lru_cache
def get_admin_database_settings() -> AdminDatabaseSettings:
    """Get cached admin database settings."""
    return AdminDatabaseSettings()


@lru_cache
def get_tenancy_settings() -> TenancySettings:
    """Get cached tenancy settings."""
    return TenancySettings()


@lru_cache
def get_auth_settings() -> AuthSettings:
    """Get cached auth settings."""
    return AuthSettings()
