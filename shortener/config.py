"""Configuration management for the URL shortener service.

Settings are read from environment variables (and an optional ``.env`` file)
with Pydantic BaseSettings and cached after the first access.

How to Use
===========
**Step 1: Import**::
    from shortener.config import get_settings

**Step 2: Read values**::
    settings = get_settings()
    print(settings.DATABASE_URL, settings.SHUTDOWN_TIMEOUT)

**Step 3: Override in tests**::
    settings = Settings(DATABASE_URL="sqlite+aiosqlite:///tmp/test.db", _env_file=None)

Key Behaviours
===============
- Environment variables override defaults automatically.
- ``APP_ENV`` selects the logging setup (local, dev or prod).
- ``HTTP_USER`` / ``HTTP_PASSWORD`` guard the write path; with an empty user
  every write request is denied.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "url-shortener"
    APP_ENV: str = "local"
    VERSION: str = "1.0.0"

    # HTTP server
    HOST: str = "localhost"
    PORT: int = 8082
    HTTP_IDLE_TIMEOUT: int = Field(60, ge=1)
    SHUTDOWN_TIMEOUT: float = Field(10.0, gt=0)

    # Write path credentials (HTTP Basic)
    HTTP_USER: str = ""
    HTTP_PASSWORD: str = ""

    # Storage
    DATABASE_URL: str = "sqlite+aiosqlite:///./storage/storage.db"
    DATABASE_ECHO: bool = False

    # Alias allocation
    ALIAS_LENGTH: int = Field(6, ge=1, le=64)
    ALIAS_MAX_ATTEMPTS: int = Field(5, ge=1)

    # Metrics and monitoring
    PROMETHEUS_ENABLED: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
