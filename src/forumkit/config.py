"""YAML config loading with env var overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from forumkit.settings import Settings


class AppConfig(BaseModel):
    brand: str = "forum"
    default_avatar_url: str | None = None
    thread_url_template: str = "/forums/threads/{id}/{slug}"
    default_page_size: int = 20
    search_chunk_size: int = 100
    settings: Settings = Field(default_factory=Settings)


def load_config(config_path: str = "config.yaml") -> AppConfig:
    """Load config from YAML file, then apply FORUM_* env var overrides to the settings section."""
    load_dotenv()

    data: dict = {}
    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            data = yaml.safe_load(f) or {}

    # Init kwargs beat env vars in pydantic-settings, so drop YAML keys the environment already sets
    yaml_settings = data.pop("settings", None) or {}
    overrides = {
        name: value
        for name, value in yaml_settings.items()
        if f"FORUM_{name.upper()}" not in os.environ
    }
    return AppConfig(**data, settings=Settings(**overrides))
