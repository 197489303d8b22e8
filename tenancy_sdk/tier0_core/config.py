"""
tenancy_sdk.tier0_core.config
───────────────────────────────
Typed configuration with env layering. Reads from .env → environment
variables. All fields are typed via Pydantic.

Minimal stack: pydantic-settings + python-dotenv
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TenancyConfig(BaseSettings):
    """
    Typed configuration for the data-access layer.
    Tenancy-specific env vars are prefixed with TENANCY_.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ───────────────────────────────────────────────────────────
    app_name: str = Field(default="commerce", alias="APP_NAME")
    environment: str = Field(default="development", alias="APP_ENV")

    # ── Database ──────────────────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite+aiosqlite:///./dev.db",
        alias="DATABASE_URL",
    )
    database_pool_size: int = Field(default=5, alias="DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(default=10, alias="DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="TENANCY_LOG_LEVEL")
    log_format: str = Field(default="json", alias="TENANCY_LOG_FORMAT")

    # ── Error reporting ───────────────────────────────────────────────────────
    error_backend: str = Field(default="none", alias="TENANCY_ERROR_BACKEND")

    # ── Metrics ───────────────────────────────────────────────────────────────
    metrics_port: int = Field(default=8001, alias="TENANCY_METRICS_PORT")

    # ── Tenancy ───────────────────────────────────────────────────────────────
    # Refuse platform (unscoped) access while a request context is active.
    escape_hatch_guard: bool = Field(default=True, alias="TENANCY_ESCAPE_HATCH_GUARD")

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if v.lower() not in allowed:
            raise ValueError(f"environment must be one of {allowed}, got {v!r}")
        return v.lower()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in {"json", "console"}:
            raise ValueError(f"log format must be 'json' or 'console', got {v!r}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache(maxsize=1)
def get_config() -> TenancyConfig:
    """
    Return the singleton config. Cached after first call.
    Call _reset_config() in tests to pick up new env vars.
    """
    return TenancyConfig()


def _reset_config() -> None:
    """For tests — clear the config cache."""
    get_config.cache_clear()
