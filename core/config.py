"""
Application configuration management.

Uses pydantic-settings for type-safe environment variable parsing.
All configuration is centralized here; the rest of the codebase receives
an immutable ServerConfig instead of reading the environment itself.
"""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


LogLevel = Literal["trace", "debug", "info", "warn", "error"]

# 50mb JSON body ceiling for the API listener
DEFAULT_BODY_LIMIT_BYTES = 50 * 1024 * 1024


class ServerConfig(BaseModel):
    """
    Immutable configuration handed to the server lifecycle.

    Every listener, CORS, storage and logging field is required: a missing
    or ill-typed value fails at construction time, before any listener is
    started.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    api_host: str
    api_port: int = Field(..., ge=0, le=65535)
    cockpit_host: str
    cockpit_port: int = Field(..., ge=0, le=65535)
    cockpit_www_root: str
    api_cors_domain_csv: str
    storage_plugin_package: str = Field(..., min_length=1)
    storage_plugin_options_json: str
    log_level: LogLevel
    api_body_limit_bytes: int = Field(DEFAULT_BODY_LIMIT_BYTES, gt=0)


class Settings(BaseSettings):
    """
    Application settings with validation and type coercion.

    Values are loaded from environment variables or .env file.
    All fields have sensible defaults for local development.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API listener
    api_host: str = "127.0.0.1"
    api_port: int = 4000
    api_cors_domain_csv: str = "*"
    api_body_limit_bytes: int = DEFAULT_BODY_LIMIT_BYTES

    # Cockpit (static single-page app) listener
    cockpit_host: str = "127.0.0.1"
    cockpit_port: int = 3000
    cockpit_www_root: str = "cockpit/www/"

    # Storage plugin selection
    # Identifier registered in core.storage.registry, e.g. "memory", "mongodb"
    storage_plugin_package: str = "memory"
    storage_plugin_options_json: str = "{}"

    # Logging
    log_level: LogLevel = "info"

    # Environment
    environment: Literal["development", "staging", "production"] = "development"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def to_server_config(self) -> ServerConfig:
        """Freeze the loaded settings into the lifecycle's configuration."""
        return ServerConfig(
            api_host=self.api_host,
            api_port=self.api_port,
            cockpit_host=self.cockpit_host,
            cockpit_port=self.cockpit_port,
            cockpit_www_root=self.cockpit_www_root,
            api_cors_domain_csv=self.api_cors_domain_csv,
            storage_plugin_package=self.storage_plugin_package,
            storage_plugin_options_json=self.storage_plugin_options_json,
            log_level=self.log_level,
            api_body_limit_bytes=self.api_body_limit_bytes,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings singleton.

    The @lru_cache ensures we only parse the environment once.
    """
    return Settings()
