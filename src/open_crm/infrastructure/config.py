"""
Configuration Management
========================

Pydantic-settings based configuration for the CRM database and API server.
Reads from environment variables (and ``.env``) with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_PORT = 3954


class DatabaseSettings(BaseSettings):
    """Where the CRM database lives."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str | None = Field(
        default=None,
        description="Connection descriptor (file:, memory:, http(s):, couchdb(s):)",
    )
    json_file: str = Field(
        default="crm.json",
        description="JSON file used when no URL is configured",
    )
    # Flush file sessions after this delay; disabled when unset
    auto_close_seconds: float | None = Field(default=None, gt=0)
    http_timeout_seconds: float = Field(default=30.0, ge=1.0)


class APISettings(BaseSettings):
    """Configuration for the FastAPI application."""

    model_config = SettingsConfigDict(env_prefix="API_")

    title: str = Field(default="Open CRM API")
    version: str = Field(default="0.1.0")
    debug: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=DEFAULT_API_PORT)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    # Shared secret for the API and for remote database sessions
    api_key: str = Field(
        default="",
        description="API key for authentication. Leave empty to disable auth.",
    )


class Settings(BaseSettings):
    """
    Root configuration aggregating all settings.

    Usage:
        settings = get_settings()
        database_url = settings.database.url
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    api: APISettings = Field(default_factory=APISettings)

    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @property
    def api_url(self) -> str:
        """Default URL of a local API server, used by remote sessions."""
        return f"http://localhost:{self.api.port}"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns singleton instance, reading from environment on first call.
    """
    return Settings()
