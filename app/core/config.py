"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Values are read once at process start and never mutated afterwards.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


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


class SteamSettings(BaseSettings):
    """Steam ticket validation configuration."""

    appid: int = Field(
        0,
        description="Steam application id the session tickets are issued for",
    )
    web_api_key: str | None = Field(
        None,
        description="Steam Web API publisher key (required unless validation is skipped)",
    )
    base_url: str = Field(
        "https://partner.steam-api.com",
        description="Steam Web API base URL",
    )
    timeout_seconds: float = Field(
        5.0,
        description="Timeout for a single ticket validation call",
        gt=0,
    )
    skip_ticket_validation: bool = Field(
        False,
        description="Trust numeric tickets as Steam ids (development/testing only)",
    )
    ticket_cache_ttl_seconds: float = Field(
        30.0,
        description="How long a successful ticket validation is reused",
        gt=0,
    )
    ticket_cache_max_entries: int = Field(
        10_000,
        description="Maximum number of cached ticket validations",
        ge=1,
    )
    max_ticket_bytes: int = Field(
        4096,
        description="Maximum accepted ticket length",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="STEAM_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Structure store limits and per-category rate limits.

    Field names map 1:1 to environment variables (no prefix).
    """

    max_user_structs_saved_per_scene: int = Field(
        100,
        description="Maximum structures kept per (scene, owner) bucket",
        ge=1,
    )
    max_requested_structs: int = Field(
        50,
        description="Upper bound on structures returned by one random sample",
        ge=1,
    )
    default_random_limit: int = Field(
        10,
        description="Sample size used when the client omits limit",
        ge=1,
    )
    max_scene_length: int = Field(
        64,
        description="Maximum scene name length in characters",
        ge=1,
    )
    max_payload_bytes: int = Field(
        16_384,
        description="Maximum size of a structure placement payload",
        ge=1,
    )
    max_likes_per_request: int = Field(
        100,
        description="Upper bound on likes applied by a single like request",
        ge=1,
    )
    post_structure_rate_limit: float = Field(
        1.0,
        description="Minimum seconds between two accepted submissions per player",
        ge=0,
    )
    get_structure_rate_limit: float = Field(
        1.0,
        description="Minimum seconds between two accepted fetches per player",
        ge=0,
    )
    post_like_rate_limit: float = Field(
        0.5,
        description="Minimum seconds between two accepted likes per player",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _check_random_limits(self) -> "StoreSettings":
        if self.default_random_limit > self.max_requested_structs:
            raise ValueError("DEFAULT_RANDOM_LIMIT must not exceed MAX_REQUESTED_STRUCTS")
        return self


class DatabaseSettings(BaseSettings):
    """Persistence backend selection."""

    backend: str = Field(
        "sqlite",
        description="Storage backend: 'sqlite' or 'memory'",
    )
    path: str = Field(
        "data/structures.db",
        description="SQLite database file path",
    )
    busy_timeout_seconds: float = Field(
        5.0,
        description="How long a connection waits for a competing writer",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: 'json' or 'plain'")
    output: str = Field("stdout", description="Log destination: 'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10_485_760, description="Rotate log file at this size (0 disables)")
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class ServerSettings(BaseSettings):
    """Uvicorn bind configuration."""

    host: str = Field("0.0.0.0", description="Interface to bind")
    port: int = Field(3000, description="Port to listen on")

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    steam: SteamSettings = Field(default_factory=SteamSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
