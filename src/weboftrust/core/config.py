"""Core configuration - centralized config for the weboftrust package.

All environment-based configuration should flow through this module.
This provides a single source of truth and consistent defaults.

Usage:
    from weboftrust.core.config import get_config
    config = get_config()

    # Access settings
    period = config.insert_period_seconds
    log_level = config.log_level
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STORAGE_BACKENDS = ("memory", "postgres")


class CoreSettings(BaseSettings):
    """Core configuration settings for the Web of Trust node.

    Settings can be configured via environment variables with the WOT_ prefix.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # STORAGE SETTINGS
    # ==========================================================================

    storage_backend: str = Field(
        default="memory",
        description="Graph persistence backend: 'memory' or 'postgres'",
        validation_alias="WOT_STORAGE_BACKEND",
    )

    db_host: str = Field(
        default="localhost",
        description="Database host",
        validation_alias="WOT_DB_HOST",
    )
    db_port: int = Field(
        default=5432,
        description="Database port",
        validation_alias="WOT_DB_PORT",
    )
    db_name: str = Field(
        default="weboftrust",
        description="Database name",
        validation_alias="WOT_DB_NAME",
    )
    db_user: str = Field(
        default="weboftrust",
        description="Database user",
        validation_alias="WOT_DB_USER",
    )
    db_password: str = Field(
        default="",
        description="Database password",
        validation_alias="WOT_DB_PASSWORD",
    )

    # Connection pool settings
    db_pool_min: int = Field(
        default=1,
        description="Minimum pool connections",
        validation_alias="WOT_DB_POOL_MIN",
    )
    db_pool_max: int = Field(
        default=10,
        description="Maximum pool connections",
        validation_alias="WOT_DB_POOL_MAX",
    )
    db_pool_timeout: int = Field(
        default=30,
        description="Seconds to wait for a pooled connection",
        validation_alias="WOT_DB_POOL_TIMEOUT",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="WOT_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="WOT_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="WOT_LOG_FILE",
    )

    # ==========================================================================
    # PUBLICATION SETTINGS
    # ==========================================================================

    insert_period_seconds: int = Field(
        default=30 * 60,
        description="Pause between two identity insert cycles",
        validation_alias="WOT_INSERT_PERIOD",
    )
    insert_startup_delay_seconds: int = Field(
        default=30,
        description="Delay before the first insert cycle, lets the network stack start",
        validation_alias="WOT_INSERT_STARTUP_DELAY",
    )

    # ==========================================================================
    # NETWORK GATEWAY SETTINGS
    # ==========================================================================

    gateway_url: str = Field(
        default="http://127.0.0.1:8888",
        description="Base URL of the content-addressed network gateway",
        validation_alias="WOT_GATEWAY_URL",
    )
    gateway_timeout: float = Field(
        default=300.0,
        description="Timeout in seconds for a single insert or fetch",
        validation_alias="WOT_GATEWAY_TIMEOUT",
    )

    # ==========================================================================
    # SCORING SETTINGS
    # ==========================================================================

    min_positive_trust: int = Field(
        default=1,
        description="Smallest trust value that lets rank propagate along an edge",
        validation_alias="WOT_MIN_POSITIVE_TRUST",
    )

    @field_validator("storage_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in STORAGE_BACKENDS:
            raise ValueError(f"storage_backend must be one of {STORAGE_BACKENDS}, got {value!r}")
        return value

    @field_validator("min_positive_trust")
    @classmethod
    def _check_min_positive_trust(cls, value: int) -> int:
        if not 1 <= value <= 100:
            raise ValueError("min_positive_trust must be between 1 and 100")
        return value

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def database_url(self) -> str:
        """Construct database URL."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def connection_params(self) -> dict:
        """Get database connection parameters dict."""
        return {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
        }

    @property
    def pool_config(self) -> dict:
        """Get connection pool configuration."""
        return {
            "minconn": self.db_pool_min,
            "maxconn": self.db_pool_max,
        }


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the global configuration instance.

    Returns:
        The singleton CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
