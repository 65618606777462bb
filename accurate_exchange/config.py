"""
Centralized configuration management for Accurate Exchange.

This module provides a unified configuration system with support for:
- Environment variables
- Runtime configuration
- Validation using Pydantic
"""

import os
from datetime import date
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import OAUTH_SCOPES, EnvironmentVariable, Limits, LogLevel, Timeouts


def _env_int(name: EnvironmentVariable, default: int) -> int:
    return int(os.getenv(name.value, str(default)))


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.DATABASE_URL.value, "sqlite:///./accurate_exchange.db"
        ),
        description="Database connection string",
    )
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum overflow connections")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL statements")
    development_mode: bool = Field(default=False, description="Allow dropping tables")

    def __repr__(self) -> str:
        """String representation with the password masked."""
        return f"DatabaseConfig(connection_string='{_mask_password(self.connection_string)}')"


def _mask_password(url: str) -> str:
    scheme, sep, rest = url.partition("://")
    if not sep or "@" not in rest:
        return url
    userinfo, _, host = rest.rpartition("@")
    user = userinfo.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_LEVEL.value, LogLevel.INFO.value),
        description="Logging level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {level.value for level in LogLevel}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class AccurateConfig(BaseModel):
    """OAuth client and application identity registered with Accurate."""

    client_id: Optional[str] = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.ACCURATE_CLIENT_ID.value),
        description="OAuth client id",
    )
    client_secret: Optional[str] = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.ACCURATE_CLIENT_SECRET.value),
        description="OAuth client secret",
    )
    redirect_uri: Optional[str] = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.ACCURATE_REDIRECT_URI.value),
        description="OAuth callback URL registered with Accurate",
    )
    app_key: Optional[str] = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.ACCURATE_APP_KEY.value),
        description="Application key issued by Accurate",
    )
    signature_secret: Optional[str] = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.ACCURATE_SIGNATURE_SECRET.value),
        description="HMAC secret used to sign API calls",
    )
    account_url: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.ACCURATE_ACCOUNT_URL.value, "https://account.accurate.id"
        ),
        description="Accurate account server (OAuth + host discovery)",
    )
    api_prefix: str = Field(default="/accurate", description="Path prefix on the database host")
    scope: str = Field(default=" ".join(OAUTH_SCOPES), description="Space separated OAuth scopes")

    @field_validator("account_url")
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class DispatcherConfig(BaseModel):
    """Rate limits and retry policy for provider calls."""

    requests_per_second: int = Field(
        default_factory=lambda: _env_int(
            EnvironmentVariable.ACCURATE_REQUESTS_PER_SECOND, Limits.DEFAULT_REQUESTS_PER_SECOND
        ),
        gt=0,
        description="Requests allowed per sliding window, per credential",
    )
    max_concurrent: int = Field(
        default_factory=lambda: _env_int(
            EnvironmentVariable.ACCURATE_MAX_CONCURRENT, Limits.DEFAULT_MAX_CONCURRENT
        ),
        gt=0,
        description="In-flight requests allowed per credential",
    )
    window_seconds: float = Field(default=Timeouts.RATE_LIMIT_WINDOW, gt=0)
    timeout_seconds: float = Field(
        default_factory=lambda: float(
            _env_int(EnvironmentVariable.ACCURATE_TIMEOUT_SECONDS, Timeouts.EXTERNAL_API_CALL)
        ),
        gt=0,
        description="Per-request timeout",
    )
    max_rate_limit_retries: int = Field(default=Limits.MAX_RATE_LIMIT_RETRIES, ge=0)
    max_server_error_retries: int = Field(default=Limits.MAX_SERVER_ERROR_RETRIES, ge=0)
    backoff_base_seconds: float = Field(default=Timeouts.BACKOFF_BASE, gt=0)
    backoff_max_seconds: float = Field(default=Timeouts.BACKOFF_MAX, gt=0)


class ExportConfig(BaseModel):
    """Export pagination settings."""

    preview_limit: int = Field(default=Limits.PREVIEW_ROW_LIMIT, gt=0)
    page_size: int = Field(default=Limits.EXPORT_PAGE_SIZE, gt=0)
    detail_workers: int = Field(default=Limits.DEFAULT_DETAIL_WORKERS, gt=0)


class ImportConfig(BaseModel):
    """Import validation and dispatch settings."""

    max_workers: int = Field(default=Limits.DEFAULT_IMPORT_WORKERS, gt=0)
    earliest_date: date = Field(default=date(2000, 1, 1))
    max_future_days: int = Field(default=31, ge=0)


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.APP_ENV.value, "development"),
        description="Application environment",
    )
    debug: bool = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.DEBUG.value, "false").lower() == "true",
        description="Debug mode",
    )

    # Sub-configurations
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    accurate: AccurateConfig = Field(default_factory=AccurateConfig)
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    imports: ImportConfig = Field(default_factory=ImportConfig)

    # Custom configuration
    custom: Dict[str, Any] = Field(default_factory=dict, description="Custom configuration values")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls()

    def get_custom(self, key: str, default: Any = None) -> Any:
        """Get a custom configuration value."""
        return self.custom.get(key, default)


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
