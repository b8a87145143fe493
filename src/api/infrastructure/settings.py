"""Application settings using pydantic-settings.

Settings are loaded from environment variables with sensible defaults
for development. Production deployments should set all values explicitly.
"""

from functools import lru_cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings.

    Environment variables:
        USER_SERVICE_DB_HOST: Database host (default: localhost)
        USER_SERVICE_DB_PORT: Database port (default: 5432)
        USER_SERVICE_DB_DATABASE: Database name (default: user_service)
        USER_SERVICE_DB_USERNAME: Database user (default: user_service)
        USER_SERVICE_DB_PASSWORD: Database password (required in production)
        USER_SERVICE_DB_POOL_MIN_CONNECTIONS: Minimum connections in pool (default: 2)
        USER_SERVICE_DB_POOL_MAX_CONNECTIONS: Maximum connections in pool (default: 10)
    """

    model_config = SettingsConfigDict(
        env_prefix="USER_SERVICE_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="user_service", description="Database name")
    username: str = Field(default="user_service", description="Database username")
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password",
    )
    pool_min_connections: int = Field(
        default=2,
        description="Minimum connections in pool",
        ge=1,
        le=100,
    )
    pool_max_connections: int = Field(
        default=10,
        description="Maximum connections in pool",
        ge=1,
        le=100,
    )

    @model_validator(mode="after")
    def validate_pool_settings(self) -> "DatabaseSettings":
        """Validate pool max >= min."""
        if self.pool_max_connections < self.pool_min_connections:
            raise ValueError(
                f"pool_max_connections ({self.pool_max_connections}) must be >= "
                f"pool_min_connections ({self.pool_min_connections})"
            )
        return self

    @property
    def connection_string(self) -> str:
        """Generate a connection string (without password for logging)."""
        return f"postgresql://{self.username}@{self.host}:{self.port}/{self.database}"


class OutboxSettings(BaseSettings):
    """Outbox relay and retention settings.

    Environment variables:
        USER_SERVICE_OUTBOX_BATCH_SIZE: Records claimed per cycle (default: 100)
        USER_SERVICE_OUTBOX_POLLING_INTERVAL_SECONDS: Pause between cycles (default: 5)
        USER_SERVICE_OUTBOX_MAX_ATTEMPTS: Failed attempts before dead-letter (default: 5)
        USER_SERVICE_OUTBOX_PUBLISH_ATTEMPTS_PER_CYCLE: Publish tries per record within
            one cycle (default: 2)
        USER_SERVICE_OUTBOX_RETRY_INTERVAL_SECONDS: Pause between in-cycle retries (default: 1)
        USER_SERVICE_OUTBOX_RETENTION_DAYS: Age at which terminal records are purged (default: 7)
        USER_SERVICE_OUTBOX_CLEANUP_PAUSE_SECONDS: Pause between purges (default: 3600)
        USER_SERVICE_OUTBOX_SHUTDOWN_TIMEOUT_SECONDS: Drain budget on stop (default: 30)
        USER_SERVICE_OUTBOX_RELAY_ENABLED: Run the relay loop (default: true)
        USER_SERVICE_OUTBOX_RETENTION_ENABLED: Run the retention sweep (default: true)

    The batch keeps its row locks while in-cycle retries pause, so during a
    message bus outage one cycle can hold them for up to
    batch_size * (publish_attempts_per_cycle - 1) * retry_interval_seconds.
    Keep publish_attempts_per_cycle low and let later cycles do the retrying;
    max_attempts counts those cycles, not the tries within one.
    """

    model_config = SettingsConfigDict(
        env_prefix="USER_SERVICE_OUTBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    batch_size: int = Field(
        default=100,
        description="Records claimed per relay cycle",
        ge=1,
        le=5000,
    )
    polling_interval_seconds: float = Field(
        default=5.0,
        description="Pause between relay cycles",
        gt=0,
    )
    max_attempts: int = Field(
        default=5,
        description="Failed delivery attempts before a record is dead-lettered",
        ge=1,
        le=10,
    )
    publish_attempts_per_cycle: int = Field(
        default=2,
        description="Publish tries per record within one relay cycle",
        ge=1,
        le=10,
    )
    retry_interval_seconds: float = Field(
        default=1.0,
        description="Pause between in-cycle publish retries",
        ge=0,
        le=10,
    )
    retention_days: int = Field(
        default=7,
        description="Age in days after which terminal records are purged",
        ge=1,
        le=50,
    )
    cleanup_pause_seconds: float = Field(
        default=3600.0,
        description="Pause between retention sweeps",
        gt=0,
    )
    shutdown_timeout_seconds: float = Field(
        default=30.0,
        description="How long stop() waits for an in-flight cycle",
        gt=0,
    )
    relay_enabled: bool = Field(default=True, description="Run the relay loop")
    retention_enabled: bool = Field(
        default=True, description="Run the retention sweep"
    )


class PublisherSettings(BaseSettings):
    """Message bus publisher settings.

    Environment variables:
        USER_SERVICE_PUBLISHER_TOPIC_PREFIX: Prepended to every topic (default: "")
    """

    model_config = SettingsConfigDict(
        env_prefix="USER_SERVICE_PUBLISHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    topic_prefix: str = Field(default="", description="Prefix for every topic")


class Settings(BaseSettings):
    """Main application settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="User Service", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    @property
    def database(self) -> DatabaseSettings:
        """Get database settings."""
        return get_database_settings()

    @property
    def outbox(self) -> OutboxSettings:
        """Get outbox settings."""
        return get_outbox_settings()

    @property
    def publisher(self) -> PublisherSettings:
        """Get publisher settings."""
        return get_publisher_settings()


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Get cached database settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return DatabaseSettings()


@lru_cache
def get_outbox_settings() -> OutboxSettings:
    """Get cached outbox settings."""
    return OutboxSettings()


@lru_cache
def get_publisher_settings() -> PublisherSettings:
    """Get cached publisher settings."""
    return PublisherSettings()
