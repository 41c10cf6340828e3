"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str | None = None

    # Cache
    redis_url: str | None = None

    # Auth - two independent signing domains
    auth_secret: str = "dev-secret-change-me"
    platform_auth_secret: str = "dev-platform-secret"
    jwt_algorithm: str = "HS256"

    # Token lifetimes
    auth_token_ttl_days: int = 30
    platform_token_ttl_days: int = 7
    setup_token_ttl_hours: int = 24 * 7

    # Setup links are built from this base
    app_base_url: str = "http://localhost:3000"

    # Lower-trust organization selection and demo behavior (off unless enabled)
    allow_org_header_fallback: bool = False
    allow_anonymous_event_submission: bool = False

    # Permission grants are re-resolved on every call when 0
    permission_cache_ttl_seconds: int = 0

    # Rate limiting (requests per minute)
    auth_attempts_per_min: int = 10

    # Passwords
    min_password_length: int = 8

    @model_validator(mode="after")
    def _separate_signing_domains(self) -> "Settings":
        if self.auth_secret == self.platform_auth_secret:
            raise ValueError("auth_secret and platform_auth_secret must differ")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
