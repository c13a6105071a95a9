"""Application configuration using pydantic-settings."""
from datetime import timedelta
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.version_policy import VersionPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str
    db_pool_size: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")

    # Auth0
    auth0_domain: str = Field(default="", validation_alias="AUTH0_DOMAIN")
    auth0_audience: str = Field(default="", validation_alias="AUTH0_AUDIENCE")
    # Custom claim carrying the tenant id (Auth0 requires namespaced custom claims)
    auth0_tenant_claim: str = Field(
        default="https://nabu.app/tenant_id",
        validation_alias="AUTH0_TENANT_CLAIM",
    )

    # Development mode - bypasses auth for local development
    dev_mode: bool = Field(default=False, validation_alias="DEV_MODE")

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Version history policy
    autosave_interval_seconds: int = Field(
        default=300, ge=0, validation_alias="AUTOSAVE_INTERVAL_SECONDS",
    )
    version_retention_min_count: int = Field(
        default=50, ge=0, validation_alias="VERSION_RETENTION_MIN_COUNT",
    )
    version_retention_days: int = Field(
        default=90, ge=0, validation_alias="VERSION_RETENTION_DAYS",
    )
    version_allocation_max_retries: int = Field(
        default=3, ge=1, validation_alias="VERSION_ALLOCATION_MAX_RETRIES",
    )

    @model_validator(mode="after")
    def validate_dev_mode_security(self) -> "Settings":
        """
        Prevent DEV_MODE from being enabled with a production database.

        DEV_MODE completely bypasses authentication, so we must ensure it's only
        used with local development databases to prevent accidental production exposure.
        """
        if not self.dev_mode:
            return self

        try:
            parsed = urlparse(self.database_url)
            hostname = parsed.hostname or ""
        except ValueError:
            # If we can't parse the URL, block DEV_MODE (fail-safe)
            hostname = ""

        local_hosts = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}
        if hostname.lower() not in local_hosts:
            raise ValueError(
                f"DEV_MODE cannot be enabled with a non-local database. "
                f"Database host '{hostname}' appears to be a production database. "
                f"DEV_MODE bypasses all authentication and must only be used locally.",
            )

        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def auth0_issuer(self) -> str:
        """Get the Auth0 issuer URL."""
        return f"https://{self.auth0_domain}/"

    @property
    def auth0_jwks_url(self) -> str:
        """Get the Auth0 JWKS URL for fetching public keys."""
        return f"https://{self.auth0_domain}/.well-known/jwks.json"

    @property
    def version_policy(self) -> VersionPolicy:
        """Build the version engine policy from settings."""
        return VersionPolicy(
            autosave_interval=timedelta(seconds=self.autosave_interval_seconds),
            retention_min_versions=self.version_retention_min_count,
            retention_days=self.version_retention_days,
            max_allocation_retries=self.version_allocation_max_retries,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
