"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - Every provider and store call has an explicit time bound configured here
    - ENVIRONMENT=production turns the Secure cookie flag on unless SESSION_COOKIE_SECURE overrides it

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
    - OAuth client settings are plain values passed into per-request clients (no module-level client)
"""

from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://roster:roster@db:5432/roster"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting platforms hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10
    store_timeout_seconds: float = 15.0

    # Google OAuth / identity
    google_client_id: str = "google-client-id-placeholder"
    google_client_secret: str = "google-client-secret-placeholder"
    # "postmessage" is the redirect used by the popup code flow
    google_redirect_uri: str = "postmessage"
    google_token_url: str = "https://oauth2.googleapis.com/token"
    google_userinfo_url: str = "https://www.googleapis.com/oauth2/v2/userinfo"

    # Google Classroom
    classroom_base_url: str = "https://classroom.googleapis.com/v1"
    classroom_page_size: int = 100

    # Provider calls
    provider_timeout_seconds: float = 20.0
    provider_max_retries: int = 3
    provider_base_delay_ms: int = 500
    provider_max_delay_ms: int = 10_000
    provider_concurrency: int = 5

    # Deployment
    environment: Literal["development", "production"] = "development"

    # Session cookie; secure unset means "on in production, off in development"
    session_cookie_name: str = "auth-session"
    session_cookie_secure: bool | None = None
    session_ttl_days: int = 7

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @model_validator(mode="after")
    def default_cookie_secure(self) -> "Settings":
        if self.session_cookie_secure is None:
            self.session_cookie_secure = self.environment == "production"
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
