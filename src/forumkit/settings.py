"""Global settings loaded from environment variables via pydantic-settings."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FORUM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = "sqlite:///./data/forum.db"
    log_dir: str = "./data/logs"
    log_level: str = "INFO"
    log_json: bool = False
    # Query cache
    cache_backend: Literal["memory", "redis", "none"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl_seconds: int = 3600
    cache_max_entries: int = 1024
    # Identity provider (secrets and endpoints, must be env vars)
    identity_base_url: str = ""
    identity_api_token: str = ""
    identity_timeout: float = 10.0
    decorator_max_workers: int = 6
