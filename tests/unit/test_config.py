"""Unit tests for Settings and the layered YAML config loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from notemind.config.loader import DEFAULTS, load_config
from notemind.config.settings import Settings


def _settings(**overrides) -> Settings:
    defaults = {"openai_api_key": "sk-test", "app_env": "test"}
    defaults.update(overrides)
    return Settings(**defaults)


class TestSettings:
    def test_env_overrides_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_CHAT_MODEL", "gpt-4.1-mini")
        monkeypatch.setenv("APP_PORT", "9001")
        settings = Settings()
        assert settings.openai_chat_model == "gpt-4.1-mini"
        assert settings.app_port == 9001

    def test_cors_origins_split(self) -> None:
        settings = _settings(cors_allowed_origins=" https://a.example , ,https://b.example")
        assert settings.get_cors_origins() == ["https://a.example", "https://b.example"]


class TestLoadConfig:
    def test_defaults_when_file_missing(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=_settings())
        assert config["ingestion"] == DEFAULTS["ingestion"]
        assert config["retrieval"]["max_documents"] == 8

    def test_yaml_overrides_defaults_per_key(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("ingestion:\n  window_size: 120\nretrieval:\n  per_doc_limit: 5\n", encoding="utf-8")

        config = load_config(str(path), settings=_settings())

        assert config["ingestion"]["window_size"] == 120
        assert config["ingestion"]["overlap"] == 20
        assert config["retrieval"]["per_doc_limit"] == 5
        assert config["retrieval"]["max_context_chars"] == 12_000

    def test_settings_overlay(self, tmp_path: Path) -> None:
        settings = _settings(openai_think_model="o4-mini", openai_embedding_dimensions=512, log_level="DEBUG")

        config = load_config(str(tmp_path / "absent.yaml"), settings=settings)

        assert config["llm"]["think_model"] == "o4-mini"
        assert config["embedding"]["dimensions"] == 512
        assert config["embedding"]["batch_size"] == 10
        assert config["logging"]["level"] == "DEBUG"

    def test_empty_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(str(path), settings=_settings())["topics"]["threshold"] == 0.25

    def test_defaults_not_mutated(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("chat:\n  history_limit: 5\n", encoding="utf-8")
        load_config(str(path), settings=_settings())
        assert DEFAULTS["chat"]["history_limit"] == 20

    def test_repo_config_matches_defaults(self, project_root: Path) -> None:
        config = load_config(str(project_root / "config" / "config.yaml"), settings=_settings())
        for section, values in DEFAULTS.items():
            for key, value in values.items():
                assert config[section][key] == value, f"{section}.{key}"
