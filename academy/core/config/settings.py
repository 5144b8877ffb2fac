# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for Academy.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from academy.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.jwt.access_token_expire_minutes)
    15
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "change-this-in-production"


class DatabaseSettings(BaseSettings):
    """Relational database configuration.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        dsn: Full async connection URL. Overrides the components when set,
            e.g. ``sqlite+aiosqlite:///./academy.db`` for local runs.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        echo: Log every SQL statement.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "academy"
    password: SecretStr = SecretStr("academy_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "academy"
    dsn: str | None = None
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        if self.dsn:
            return self.dsn
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured URL points at SQLite."""
        return self.url.startswith("sqlite")


class RedisSettings(BaseSettings):
    """Redis configuration for caching and message brokering.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
        max_connections: Maximum connection pool size.
        key_prefix: Namespace prepended to every cache key.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 6379
    password: SecretStr = SecretStr("")
    database: int = 0
    max_connections: int = 50
    key_prefix: str = "academy:"

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        auth = f":{pwd}@" if pwd else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.database}"


class JWTSettings(BaseSettings):
    """JWT authentication configuration.

    Attributes:
        secret_key: Secret key for signing access tokens.
        refresh_secret_key: Secret key for signing refresh tokens.
            Falls back to secret_key when unset.
        algorithm: JWT signing algorithm.
        issuer: Value of the ``iss`` claim.
        audience: Value of the ``aud`` claim.
        access_token_expire_minutes: Access token expiration time.
        refresh_token_expire_days: Refresh token expiration time.
        max_refresh_tokens_per_user: Active devices allowed per user.
        blacklist_fallback_hours: Blacklist lifetime for undecodable tokens.
        expiring_soon_minutes: Window used by is_token_expiring_soon.
        revoke_device_on_reuse: Revoke a device's sessions when an already
            rotated refresh token is presented again.
    """

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        extra="ignore",
    )

    secret_key: SecretStr = SecretStr(DEFAULT_JWT_SECRET)
    refresh_secret_key: SecretStr | None = None
    algorithm: str = "HS256"
    issuer: str = "academy"
    audience: str = "academy-users"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    max_refresh_tokens_per_user: int = 5
    blacklist_fallback_hours: int = 24
    expiring_soon_minutes: int = 5
    revoke_device_on_reuse: bool = True


class AuthSettings(BaseSettings):
    """Login protection configuration.

    Attributes:
        max_login_attempts: Failed attempts before the account is locked.
        lockout_minutes: Duration of an account lock.
        bcrypt_rounds: Cost factor used for password hashing.
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        extra="ignore",
    )

    max_login_attempts: int = 5
    lockout_minutes: int = 30
    bcrypt_rounds: int = 12


class CacheSettings(BaseSettings):
    """Derived-data cache configuration.

    Attributes:
        backend: Storage used by the cache layer.
        short_ttl_seconds: TTL for analytics over the 24h window.
        long_ttl_seconds: TTL for analytics over longer windows.
        response_ttl_seconds: TTL for cached GET responses.
        response_paths: Path prefixes whose GET responses are cached.
    """

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        extra="ignore",
    )

    backend: Literal["database", "redis"] = "database"
    short_ttl_seconds: int = 300
    long_ttl_seconds: int = 3600
    response_ttl_seconds: int = 300
    response_paths: list[str] = ["/api/v1/analytics"]


class SMTPSettings(BaseSettings):
    """Outgoing email configuration.

    Email is disabled (messages are only logged) when host is unset.
    """

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        extra="ignore",
    )

    host: str | None = None
    port: int = 587
    username: str | None = None
    password: SecretStr | None = None
    use_tls: bool = True
    from_email: str = "no-reply@academy.local"
    from_name: str = "Academy"

    @property
    def is_configured(self) -> bool:
        """Check whether an SMTP server is configured."""
        return bool(self.host)


class PaymentSettings(BaseSettings):
    """Payment gateway configuration.

    Attributes:
        key_id: Public key identifier issued by the gateway.
        key_secret: Secret used to sign and verify payment callbacks.
        currency: Default currency for orders.
        emi_interval_days: Days between EMI installments.
    """

    model_config = SettingsConfigDict(
        env_prefix="PAYMENT_",
        extra="ignore",
    )

    key_id: str = "test_key"
    key_secret: SecretStr = SecretStr("test_secret")
    currency: str = "INR"
    emi_interval_days: int = 30


class VideoSettings(BaseSettings):
    """Live session video provider configuration.

    Attributes:
        provider: Default provider for new sessions.
        inhouse_base_url: Base URL of the in-house meeting service.
        inhouse_secret: Secret used to sign in-house join and host links.
    """

    model_config = SettingsConfigDict(
        env_prefix="VIDEO_",
        extra="ignore",
    )

    provider: Literal["inhouse", "zoom", "google_meet"] = "inhouse"
    inhouse_base_url: str = "https://meet.academy.local"
    inhouse_secret: SecretStr = SecretStr("change-this-video-secret")


class SchedulerSettings(BaseSettings):
    """Maintenance job configuration.

    Attributes:
        enabled: Start the scheduler with the API process.
        token_cleanup_interval_minutes: Interval of the token cleanup job.
        stale_doubt_cron: Cron expression of the stale-doubt job.
        stale_doubt_days: Age after which answered doubts are closed.
        progress_recalc_cron: Cron expression of the nightly progress recalculation.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        extra="ignore",
    )

    enabled: bool = True
    token_cleanup_interval_minutes: int = 60
    stale_doubt_cron: str = "0 3 * * *"
    stale_doubt_days: int = 30
    progress_recalc_cron: str = "30 2 * * *"


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        log_format: Renderer used for structured logs.
        database: Database settings.
        redis: Redis settings.
        jwt: JWT authentication settings.
        auth: Login protection settings.
        cache: Cache layer settings.
        smtp: Email settings.
        payment: Payment gateway settings.
        video: Video provider settings.
        scheduler: Maintenance job settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    smtp: SMTPSettings = Field(default_factory=SMTPSettings)
    payment: PaymentSettings = Field(default_factory=PaymentSettings)
    video: VideoSettings = Field(default_factory=VideoSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production":
            if self.jwt.secret_key.get_secret_value() == DEFAULT_JWT_SECRET:
                raise ValueError(
                    "JWT secret key must be changed from default in production. "
                    "Set JWT_SECRET_KEY environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
