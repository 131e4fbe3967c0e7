"""
Configuration settings for the bangla10 trainer.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Local Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".bangla10",
        description="Directory holding the local state database",
    )
    content_dir: Path = Field(
        default=Path("data"),
        description="Directory with phrases.json, categories.json and prayer.json",
    )
    storage_key: str = Field(
        default="bangla10-srs",
        description="Key of the durable slot holding the local document",
    )

    # ========================================
    # Client-side Sync
    # ========================================
    sync_url: str | None = Field(
        default="http://127.0.0.1:8100",
        description="Base URL of the progress API (empty disables sync)",
    )
    sync_enabled: bool = Field(
        default=True,
        description="Master switch for remote sync",
    )
    sync_debounce_seconds: float = Field(
        default=0.7,
        ge=0.0,
        description="Delay used to coalesce rapid local edits into one push",
    )
    sync_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="HTTP timeout for progress requests",
    )
    sync_bootstrap_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Longest wait for the startup read of remote progress",
    )
    max_state_bytes: int = Field(
        default=900_000,
        gt=0,
        description="Largest accepted serialized state payload",
    )

    # ========================================
    # Server-side Storage Backends
    # ========================================
    kv_rest_api_url: str | None = Field(
        default=None,
        description="Redis REST endpoint (KV backend)",
    )
    kv_rest_api_token: str | None = Field(
        default=None,
        description="Bearer token for the Redis REST endpoint",
    )
    blob_read_write_token: str | None = Field(
        default=None,
        description="Read/write token for the blob backend",
    )
    blob_api_url: str = Field(
        default="https://blob.vercel-storage.com",
        description="Blob store HTTP API base URL",
    )
    progress_key: str = Field(
        default="bangla10:progress:v1",
        description="KV key of the progress envelope",
    )
    progress_blob_path: str = Field(
        default="bangla10/progress.json",
        description="Blob pathname of the progress envelope",
    )

    # ========================================
    # Service
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    api_host: str = Field(
        default="127.0.0.1",
        description="Progress API bind host",
    )
    api_port: int = Field(
        default=8100,
        description="Progress API port",
    )

    @property
    def state_db_path(self) -> Path:
        """SQLite file backing the local durable slot."""
        return self.data_dir / "state.db"

    def has_sync_configured(self) -> bool:
        return self.sync_enabled and bool(self.sync_url)

    def has_kv_configured(self) -> bool:
        return bool(self.kv_rest_api_url and self.kv_rest_api_token)

    def has_blob_configured(self) -> bool:
        return bool(self.blob_read_write_token)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
