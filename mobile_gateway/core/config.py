"""Application configuration using Pydantic Settings.

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

# Production might inject via env vars only
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


# Local development origins for Expo web, the React Native packager and the
# storefront dev server.
DEV_ORIGINS = (
    "http://localhost:19006",
    "http://localhost:8081",
    "http://localhost:3000",
)


def parse_csv(value: str | None) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty items.

    Examples:
        >>> parse_csv("a, b ,,c")
        ['a', 'b', 'c']
        >>> parse_csv(None)
        []
    """
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_prefix: str = Field(
        "/api/mobile/v1",
        description="Path prefix for all mobile proxy routes",
    )
    rate_limit_enabled: bool = Field(
        True,
        description="Enable per-route rate limiting",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers",
    )
    expose_error_messages: bool = Field(
        False,
        description="Return the message of unexpected exceptions instead of a generic one",
    )
    strict_upstream_json: bool = Field(
        False,
        description="Answer 502 when an upstream body is not valid JSON instead of treating it as {}",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class UpstreamSettings(BaseSettings):
    """Internal web API the proxy forwards to."""

    base_url: str | None = Field(
        None,
        description="Origin of the internal API; defaults to the inbound request origin",
    )
    timeout_seconds: float = Field(
        10.0,
        description="Deadline for a single upstream call in seconds",
        gt=0,
    )
    user_agent: str = Field(
        "storefront-mobile-gateway/0.1",
        description="User-Agent sent on upstream calls",
    )

    model_config = SettingsConfigDict(
        env_prefix="UPSTREAM_",
        case_sensitive=False,
    )


class CorsSettings(BaseSettings):
    """Cross-origin policy for mobile and web clients."""

    allowed_origins: str | None = Field(
        None,
        description="Comma-separated list of additional allowed origins",
    )
    app_origin: str | None = Field(
        None,
        description="Public storefront origin",
    )
    mobile_app_origin: str | None = Field(
        None,
        description="Origin used by the mobile app (custom scheme or proxy)",
    )
    include_dev_origins: bool = Field(
        True,
        description="Allow the local Expo/React Native/storefront dev origins",
    )
    max_age: int = Field(
        600,
        description="Preflight cache lifetime in seconds",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        case_sensitive=False,
    )

    def origins(self) -> list[str]:
        """Resolve the effective origin allow-list."""
        resolved = parse_csv(self.allowed_origins)
        for origin in (self.app_origin, self.mobile_app_origin):
            if origin:
                resolved.append(origin)
        if self.include_dev_origins:
            resolved.extend(DEV_ORIGINS)
        return list(dict.fromkeys(resolved))


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10 * 1024 * 1024, description="Rotate the log file at this size (0 disables)")
    backup_count: int = Field(5, description="Number of rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Header carrying the correlation id")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


def _build_app_settings() -> AppSettings:
    return AppSettings()  # type: ignore[call-arg]


def _build_upstream_settings() -> UpstreamSettings:
    return UpstreamSettings()  # type: ignore[call-arg]


def _build_cors_settings() -> CorsSettings:
    return CorsSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    upstream: UpstreamSettings = Field(default_factory=_build_upstream_settings)
    cors: CorsSettings = Field(default_factory=_build_cors_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Nested settings are created via default_factory so env loading works.
settings = Settings()
