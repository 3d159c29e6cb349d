"""Service configuration using Pydantic Settings.

The middleware itself is configured programmatically through
``RateLimitConfig``; these settings only drive the bundled service.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from http_limiter.adapters.rate_limit.base import Algorithm

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
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv

    load_dotenv(_env_file, override=True)


def _build_limiter_settings() -> "LimiterSettings":
    return LimiterSettings()


def _build_log_settings() -> "LogSettings":
    return LogSettings()


class LimiterSettings(BaseSettings):
    """Rate limit and shared store configuration."""

    redis_url: str = Field(
        "redis://127.0.0.1:6379/0",
        description="Redis connection URL for the shared counter store",
    )
    max: int = Field(
        10,
        description="Requests allowed per period and per client key",
        ge=1,
    )
    burst: int = Field(
        10,
        description="Extra allowance above the steady rate (GCRA only)",
        ge=1,
    )
    period_seconds: float = Field(
        60.0,
        description="Rate window duration in seconds",
        gt=0,
    )
    algorithm: Algorithm = Field(
        Algorithm.SLIDING_WINDOW,
        description="Rate limiting algorithm: sliding_window or gcra",
    )
    prefix: str = Field(
        "http_limiter",
        description="Namespace prepended to every store key",
        min_length=1,
    )
    skip_on_error: bool = Field(
        False,
        description="Let requests through when the store is unavailable",
    )
    status_code: int = Field(
        429,
        description="HTTP status returned to rate limited clients",
        ge=400,
        le=599,
    )
    message: str = Field(
        "Too many requests, please try again later.",
        description="Response body returned to rate limited clients",
    )
    exempt_paths: str = Field(
        "/health",
        description="Comma-separated request paths that bypass rate limiting",
    )

    model_config = SettingsConfigDict(
        env_prefix="LIMITER_",
        case_sensitive=False,
    )

    @property
    def exempt_path_set(self) -> frozenset[str]:
        return frozenset(p.strip() for p in self.exempt_paths.split(",") if p.strip())


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file at this size; 0 disables rotation",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if a value is out of range.
    """

    app_env: str = APP_ENV
    limiter: LimiterSettings = Field(default_factory=_build_limiter_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
