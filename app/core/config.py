"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.errors import ValidationAppError
from app.schemas.rate_limit import LimiterConfig, RateLimitRule


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class ServerSettings(BaseSettings):
    """HTTP server bind address."""

    host: str = Field("0.0.0.0", description="Interface the server binds to")
    port: int = Field(8080, description="TCP port the server listens on", ge=1, le=65535)

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        case_sensitive=False,
    )


class StorageSettings(BaseSettings):
    """Counter store selection."""

    type: str = Field(
        "redis",
        description="Counter store backend (redis or memory)",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Redis connection configuration for the shared counter store."""

    host: str = Field("localhost", description="Redis host")
    port: int = Field(6379, description="Redis port")
    password: str | None = Field(None, description="Redis password (optional)")
    db: int = Field(0, description="Redis logical database index")
    socket_timeout_seconds: float = Field(
        5.0,
        description="Connect/read timeout applied to every Redis round trip",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Rate limiting rules and HTTP behaviour.

    ``TOKENS`` is read without prefix and holds comma-separated overrides in
    the form ``TOKEN:REQUESTS:WINDOW_SECONDS:BLOCK_DURATION_MINUTES``.
    """

    enabled: bool = Field(
        True,
        description="Enable the rate limiting middleware (disabled means fail-open)",
    )
    ip_requests: int = Field(10, description="Requests allowed per window for each IP")
    ip_window_seconds: int = Field(1, description="IP counting window in seconds")
    ip_block_duration_minutes: int = Field(
        5,
        description="Minutes an IP stays blocked after exceeding its budget",
    )
    token_default_requests: int | None = Field(
        None,
        description="Requests per window for tokens without override (unset disables)",
    )
    token_default_window_seconds: int = Field(1, description="Default token window in seconds")
    token_default_block_duration_minutes: int = Field(
        5,
        description="Minutes a token stays blocked after exceeding its budget",
    )
    tokens: str | None = Field(
        None,
        validation_alias="TOKENS",
        description="Per-token overrides: TOKEN:REQUESTS:WINDOW_SECONDS:BLOCK_DURATION_MINUTES,...",
    )
    token_header: str = Field("API_KEY", description="Header carrying the client token")
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers in responses",
    )
    exempt_paths: str = Field(
        "/health,/health/ready",
        description="Comma-separated request paths that bypass the limiter",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
        populate_by_name=True,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate the log file at this size (0 disables)")
    backup_count: int = Field(5, description="Rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read/propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    server: ServerSettings = Field(default_factory=ServerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


def _rule(requests: int, window_seconds: int, block_minutes: int) -> RateLimitRule:
    return RateLimitRule(
        requests=requests,
        window=timedelta(seconds=window_seconds),
        block_duration=timedelta(minutes=block_minutes),
    )


def parse_token_overrides(raw: str | None) -> dict[str, RateLimitRule]:
    """Parse the ``TOKENS`` override list into rules keyed by token.

    Args:
        raw: Comma-separated ``TOKEN:REQUESTS:WINDOW_SECONDS:BLOCK_MINUTES``
            entries, or None.

    Returns:
        Mapping of trimmed token to its rule (empty when unset).

    Raises:
        ValidationAppError: If an entry is malformed.

    Examples:
        >>> parse_token_overrides("abc123:100:1:5")["abc123"].requests
        100
        >>> parse_token_overrides(None)
        {}
    """
    if not raw or not raw.strip():
        return {}

    overrides: dict[str, RateLimitRule] = {}
    for item in raw.split(","):
        if not item.strip():
            continue
        parts = [part.strip() for part in item.strip().split(":")]
        if len(parts) != 4 or not parts[0]:
            raise ValidationAppError(
                code="invalid_token_override",
                message=(
                    "token override must follow "
                    f"TOKEN:REQUESTS:WINDOW_SECONDS:BLOCK_DURATION_MINUTES: {item.strip()}"
                ),
                details={"setting": "TOKENS"},
            )

        token = parts[0]
        try:
            requests, window_seconds, block_minutes = (int(part) for part in parts[1:])
        except ValueError as exc:
            raise ValidationAppError(
                code="invalid_token_override",
                message=f"invalid numeric value in override for token {token}",
                details={"setting": "TOKENS"},
            ) from exc

        overrides[token] = _rule(requests, window_seconds, block_minutes)

    return overrides


def parse_exempt_paths(raw: str | None) -> frozenset[str]:
    """Parse comma-separated paths, ignoring blanks."""
    if not raw:
        return frozenset()
    return frozenset(path.strip() for path in raw.split(",") if path.strip())


def build_limiter_config(rate_limit: RateLimitSettings) -> LimiterConfig:
    """Convert rate limit settings into the immutable limiter configuration.

    Args:
        rate_limit: Resolved rate limit settings.

    Returns:
        LimiterConfig consumed by RateLimiterService.

    Raises:
        ValidationAppError: If the TOKENS overrides are malformed.
    """
    default_token_rule = RateLimitRule.disabled()
    if rate_limit.token_default_requests is not None:
        default_token_rule = _rule(
            rate_limit.token_default_requests,
            rate_limit.token_default_window_seconds,
            rate_limit.token_default_block_duration_minutes,
        )

    return LimiterConfig(
        default_ip_rule=_rule(
            rate_limit.ip_requests,
            rate_limit.ip_window_seconds,
            rate_limit.ip_block_duration_minutes,
        ),
        default_token_rule=default_token_rule,
        token_rules=parse_token_overrides(rate_limit.tokens),
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
