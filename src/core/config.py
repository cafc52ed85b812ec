"""Environment-driven configuration for the Bulwark server.

Settings are loaded with Pydantic Settings from, in order of precedence:

1. Process environment variables (``PORT``, ``DB_URL``, ``DB_PASSWORD``, ...)
2. ``.env.<ENVIRONMENT>`` file, then ``.env`` in the working directory
3. Defaults declared on the models below

Nested sections use the ``__`` delimiter, e.g.
``RATE_LIMIT_CONFIG__MAX_REQUESTS=500`` or ``OVERLOAD_CONFIG__MAX_LAG_MS=120``.
Values are read once at startup and cached by :func:`get_settings`.
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.core.constants import (
    DEFAULT_HSTS_MAX_AGE,
    DEFAULT_MAX_BODY_BYTES,
    RATE_LIMIT_MESSAGE,
    SECONDS_PER_DAY,
)


class LogConfig(BaseModel):
    """Logging configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_formatter_type: Literal["console", "json"] | None = Field(
        default=None,
        description="Log output formatter. Derived from the environment if unset.",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: ["password", "db_password", "token", "secret"],
        description="Extra field names to redact in console output",
    )


class CorsConfig(BaseModel):
    """Cross-origin policy. The defaults allow every origin."""

    allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    allow_methods: list[str] = Field(default_factory=lambda: ["*"])
    allow_headers: list[str] = Field(default_factory=lambda: ["*"])
    max_age: int = Field(default=600, ge=0, description="Pre-flight cache seconds")


class RateLimitConfig(BaseModel):
    """Fixed-window rate limiting per client address."""

    enabled: bool = Field(default=True)
    window_seconds: float = Field(
        default=SECONDS_PER_DAY,
        gt=0,
        description="Length of one counting window in seconds",
    )
    max_requests: int = Field(
        default=100,
        ge=1,
        description="Maximum admitted requests per client inside one window",
    )
    message: str = Field(
        default=RATE_LIMIT_MESSAGE,
        description="Body returned once a client exceeds the limit",
    )
    standard_headers: bool = Field(
        default=True,
        description="Send RateLimit-Limit / RateLimit-Remaining / RateLimit-Reset",
    )
    legacy_headers: bool = Field(
        default=False,
        description="Send the legacy X-RateLimit-* headers",
    )
    max_tracked_keys: int = Field(
        default=100_000,
        ge=1,
        description="Upper bound on distinct client keys held in memory",
    )


class OverloadConfig(BaseModel):
    """Event-loop lag based load shedding."""

    enabled: bool = Field(default=True)
    max_lag_ms: float = Field(
        default=70.0,
        gt=0,
        description="Smoothed lag above which requests are shed with 503",
    )
    check_interval_ms: float = Field(
        default=500.0,
        gt=0,
        description="How often the lag monitor samples the event loop",
    )
    smoothing_factor: float = Field(
        default=1 / 3,
        gt=0,
        le=1,
        description="Weight of the newest sample in the dampened lag value",
    )
    lag_warning_threshold_ms: float = Field(
        default=70.0,
        gt=0,
        description="Raw lag above which a warning is logged (does not shed)",
    )


class BodyLimitConfig(BaseModel):
    """Request body size limit."""

    max_body_bytes: int = Field(default=DEFAULT_MAX_BODY_BYTES, ge=0)


class CompressionConfig(BaseModel):
    """Response compression."""

    minimum_size: int = Field(
        default=1024,
        ge=0,
        description="Responses smaller than this many bytes are sent as is",
    )
    compresslevel: int = Field(default=6, ge=1, le=9)


class HttpsConfig(BaseModel):
    """Plaintext HTTP enforcement."""

    enabled: bool | None = Field(
        default=None,
        description="Enforce HTTPS. Enabled in production when unset.",
    )
    trust_forwarded_proto: bool = Field(
        default=True,
        description="Treat X-Forwarded-Proto: https as a secure request",
    )
    redirect_status_code: Literal[301, 302, 307, 308] = Field(default=301)


class SecurityHeadersConfig(BaseModel):
    """Security header policy."""

    hsts_max_age: int = Field(default=DEFAULT_HSTS_MAX_AGE, ge=0)
    hsts_include_subdomains: bool = Field(default=True)
    hsts_preload: bool = Field(default=False)
    content_security_policy: str | None = Field(
        default=None,
        description="Override the default Content-Security-Policy value",
    )


class Settings(BaseSettings):
    """Main settings class for the application."""

    model_config = SettingsConfigDict(
        env_file=(".env", f".env.{os.getenv('ENVIRONMENT', 'development')}"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = Field(default="Bulwark", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Environment the application is running in",
    )
    debug: bool = Field(default=False, description="Debug mode flag")

    api_host: str = Field(default="0.0.0.0", description="Interface to bind")  # noqa: S104
    api_port: int = Field(
        default=3000,
        description="Listen port",
        validation_alias=AliasChoices("PORT", "API_PORT"),
    )

    # Passed through for collaborators; the server itself never connects.
    db_url: str | None = Field(default=None, description="Database URL")
    db_password: SecretStr | None = Field(default=None, description="Database password")

    log_config: LogConfig = Field(default_factory=LogConfig)
    cors_config: CorsConfig = Field(default_factory=CorsConfig)
    rate_limit_config: RateLimitConfig = Field(default_factory=RateLimitConfig)
    overload_config: OverloadConfig = Field(default_factory=OverloadConfig)
    body_limit_config: BodyLimitConfig = Field(default_factory=BodyLimitConfig)
    compression_config: CompressionConfig = Field(default_factory=CompressionConfig)
    https_config: HttpsConfig = Field(default_factory=HttpsConfig)
    security_headers_config: SecurityHeadersConfig = Field(
        default_factory=SecurityHeadersConfig
    )

    def model_post_init(self, __context: object) -> None:
        """Fill environment-dependent defaults left unset."""
        super().model_post_init(__context)

        if self.log_config.log_formatter_type is None:
            self.log_config.log_formatter_type = (
                "console" if self.environment == "development" else "json"
            )

        if self.https_config.enabled is None:
            self.https_config.enabled = self.environment == "production"

    @field_validator("db_url", "db_password", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: object) -> object:
        """Treat empty environment values as absent."""
        _ = cls
        if v == "":
            return None
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
