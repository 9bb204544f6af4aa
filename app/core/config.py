"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class CooldownPriority(str, Enum):
    """Which cooldown marker to set when a rejected attempt finds both
    counters at their caps."""

    SCOPE_FIRST = "scope_first"
    NUMBER_FIRST = "number_first"
    BOTH = "both"


class StoreBackend(str, Enum):
    REDIS = "redis"
    MEMORY = "memory"


class RateLimiterSettings(BaseSettings):
    """Quotas, durations and key layout for the admission controller."""

    max_per_number: int = Field(
        3,
        description="Maximum sends allowed per phone number within one window",
        ge=1,
    )
    max_per_account: int = Field(
        5,
        description="Maximum sends allowed across the whole account within one window",
        ge=1,
    )
    window_seconds: float = Field(
        1.0,
        description="Sliding window size in seconds",
        gt=0,
    )
    cooldown_seconds: float = Field(
        1.0,
        description="Penalty applied after a quota is hit, in seconds",
        gt=0,
    )
    cooldown_priority: CooldownPriority = Field(
        CooldownPriority.SCOPE_FIRST,
        description="Cooldown to set when both quotas are exhausted at once",
    )
    number_key_prefix: str = Field(
        "sms_limit:",
        description="Prefix of the per-number counter key",
    )
    account_key: str = Field(
        "account_limit",
        description="Key of the shared account counter",
    )
    cooldown_key_prefix: str = Field(
        "cooldown:",
        description="Prefix of cooldown marker keys",
    )
    include_headers: bool = Field(
        True,
        description="Include Retry-After header on rate-limited responses",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMITER_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Shared counter store connection settings."""

    backend: StoreBackend = Field(
        StoreBackend.REDIS,
        description="Counter store backend: redis (shared) or memory (single process)",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL",
    )
    socket_timeout_seconds: float = Field(
        1.0,
        description="Upper bound for a single Redis command",
        gt=0,
    )
    connect_timeout_seconds: float = Field(
        1.0,
        description="Upper bound for establishing a Redis connection",
        gt=0,
    )
    max_connections: int = Field(
        50,
        description="Size of the shared Redis connection pool",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (defaults to logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    rate_limiter: RateLimiterSettings = Field(default_factory=RateLimiterSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance composed from domain-specific settings.
# Nested settings are created via default_factory so env loading works.
settings = Settings()
