"""Tests for YAML config loading and env overrides."""

from __future__ import annotations

from pathlib import Path

from forumkit.config import load_config


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("FORUM_DATABASE_URL", raising=False)

        cfg = load_config(str(tmp_path / "absent.yaml"))

        assert cfg.brand == "forum"
        assert cfg.default_page_size == 20
        assert cfg.settings.cache_backend == "memory"

    def test_yaml_values(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("FORUM_CACHE_BACKEND", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(
            "brand: pianote\n"
            "default_page_size: 50\n"
            "settings:\n"
            "  cache_backend: none\n"
            "  decorator_max_workers: 2\n"
        )

        cfg = load_config(str(path))

        assert cfg.brand == "pianote"
        assert cfg.default_page_size == 50
        assert cfg.settings.cache_backend == "none"
        assert cfg.settings.decorator_max_workers == 2

    def test_env_beats_yaml(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("settings:\n  database_url: sqlite:///from-yaml.db\n")
        monkeypatch.setenv("FORUM_DATABASE_URL", "sqlite:///from-env.db")

        cfg = load_config(str(path))

        assert cfg.settings.database_url == "sqlite:///from-env.db"
