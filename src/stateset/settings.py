"""Shared settings loaded from environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the StateSet REST API server.

    Values are read from environment variables and from a ``.env`` file
    in the working directory.  See ``.env.example`` for all options.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Shared
    log_level: str = "INFO"

    # REST API
    api_server_host: str = "localhost"
    api_server_port: int = 8000
    port: int | None = None  # platform-injected PORT takes precedence over api_server_port
    max_body_bytes: int = 10 * 1024 * 1024

    @property
    def effective_port(self) -> int:
        """Return the port to listen on (platform PORT takes precedence)."""
        return self.port if self.port is not None else self.api_server_port

    # Storage
    storage_backend: Literal["memory", "sqlite"] = "memory"
    sqlite_path: str = "stateset.db"
    sqlite_busy_timeout_ms: int = 5000

    # Bootstrap
    seed_file: str | None = None

    # Dataset engine
    max_rows_per_request: int = 10_000
    publish_max_attempts: int = 3
