"""Configuration management for the adminkit backend.

Uses Pydantic Settings for type-safe, environment-based configuration.
"""

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
# Use override=True to ensure .env changes take effect immediately
load_dotenv(override=True)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # App configuration
    app_name: str = Field("adminkit", alias="ADMINKIT_APP_NAME")
    debug: bool = Field(False, alias="ADMINKIT_DEBUG")
    version: str = Field("0.0.0-dev", alias="ADMINKIT_APP_VERSION")
    environment: str = Field("development", alias="ADMINKIT_ENVIRONMENT")

    # API configuration
    api_v1_prefix: str = "/api/v1"
    api_host: str = Field("127.0.0.1", alias="ADMINKIT_API_HOST")
    api_port: int = Field(8000, alias="ADMINKIT_API_PORT")

    # Database configuration
    database_url: str = Field(alias="ADMINKIT_DATABASE_URL")
    database_pool_size: int = 20
    database_max_overflow: int = 30
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600

    # Logging configuration
    log_level: str = Field("INFO", alias="ADMINKIT_LOG_LEVEL")
    log_format: str = Field("text", alias="ADMINKIT_LOG_FORMAT")  # text or json

    # Data explorer
    # Schemas whose tables are listed by the catalog (JSON list in the environment)
    data_explorer_schemas: list[str] = Field(
        default_factory=lambda: ["public", "admin", "cms", "dashboards"],
        alias="ADMINKIT_DATA_EXPLORER_SCHEMAS",
    )
    data_default_page_size: int = Field(20, alias="ADMINKIT_DATA_DEFAULT_PAGE_SIZE")
    data_max_page_size: int = Field(500, alias="ADMINKIT_DATA_MAX_PAGE_SIZE")
    data_field_values_limit: int = Field(100, alias="ADMINKIT_DATA_FIELD_VALUES_LIMIT")

    # Audit log table location (None = default schema of the connection)
    audit_table_schema: str | None = Field(None, alias="ADMINKIT_AUDIT_TABLE_SCHEMA")

    # Plugins
    # Entries are "package.module:attribute" pointing at a plugin definition or pair
    plugin_modules: list[str] = Field(
        default_factory=lambda: ["adminkit.plugins.builtin.reference:reference_plugin"],
        alias="ADMINKIT_PLUGIN_MODULES",
    )
    plugin_storage_max_bytes: int = Field(64 * 1024, alias="ADMINKIT_PLUGIN_STORAGE_MAX_BYTES")
    plugin_scheduler_enabled: bool = Field(True, alias="ADMINKIT_PLUGIN_SCHEDULER_ENABLED")
    plugin_scheduler_interval_seconds: float = Field(30.0, alias="ADMINKIT_PLUGIN_SCHEDULER_INTERVAL_SECONDS")
    # Only environment variables with this prefix are exposed to plugin contexts
    plugin_env_prefix: str = Field("ADMINKIT_PLUGIN_", alias="ADMINKIT_PLUGIN_ENV_PREFIX")

    # Fernet key used to encrypt plugin secrets at rest
    secrets_encryption_key: str | None = Field(None, alias="ADMINKIT_SECRETS_ENCRYPTION_KEY")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        return str(v or "INFO").upper()

    @field_validator("data_default_page_size", "data_max_page_size", "data_field_values_limit")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra environment variables instead of forbidding them
        populate_by_name=True,
    )


def get_settings() -> Settings:
    """Build a fresh settings instance from the environment."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance - will be created when first accessed
settings = None


def get_settings_instance() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global settings  # noqa: PLW0603
    if settings is None:
        settings = get_settings()
    return settings


def reset_settings_instance() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global settings  # noqa: PLW0603
    settings = None
