"""
Matcha: Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Matcha backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    DB_USER: str = "matcha_user"
    DB_PASSWORD: str = ""
    DB_NAME: str = "matcha"
    CLOUD_SQL_INSTANCE_CONNECTION: str = ""
    CLOUD_SQL_USE_UNIX_SOCKET: bool = False
    STORE_RETRY_ATTEMPTS: int = 3

    # ------------------------------------------------------------------ #
    # Redis – shared presence store (optional)
    # ------------------------------------------------------------------ #
    REDIS_URL: str = ""

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    APP_BASE_URL: str = "http://localhost:8000"

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Identity
    # ------------------------------------------------------------------ #
    EMAIL_VERIFICATION_TTL_HOURS: int = 24
    PASSWORD_RESET_TTL_HOURS: int = 1
    REQUIRE_EMAIL_VERIFICATION: bool = True
    PASSWORD_MIN_LENGTH: int = 8

    # ------------------------------------------------------------------ #
    # Matching / visibility
    # ------------------------------------------------------------------ #
    PROFILE_VIEW_COOLDOWN_HOURS: int = 24
    SUGGESTION_LIMIT: int = 10
    NOTIFICATION_RETENTION_DAYS: int = 30
    MESSAGE_MAX_LENGTH: int = 1000

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @field_validator(
        "PROFILE_VIEW_COOLDOWN_HOURS",
        "EMAIL_VERIFICATION_TTL_HOURS",
        "PASSWORD_RESET_TTL_HOURS",
        "STORE_RETRY_ATTEMPTS",
    )
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime.  Import this function anywhere you
    need access to configuration::

        from matcha.config import get_settings
        settings = get_settings()
    """
    return Settings()  # type: ignore[call-arg]
