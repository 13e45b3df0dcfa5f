"""YAML configuration loader with environment variable overrides.

Configuration is layered, later layers winning:

    1. config/config.yaml  - tunables checked into the repo
    2. .env file           - local developer overrides
    3. Environment vars    - set at deploy time

``load_config`` reads the YAML first and deep-merges the
environment-derived values from :class:`Settings` on top.
"""

from pathlib import Path
from typing import Any

import yaml

from notemind.config.settings import Settings

# Used when config.yaml is missing or omits a section.
DEFAULTS: dict[str, Any] = {
    "ingestion": {
        "window_size": 300,
        "overlap": 20,
        "max_chars": 2_500_000,
        "min_text_length": 10,
        "raw_content_chars": 1_000_000,
        "progress_every": 25,
        "chunk_delay_seconds": 0.04,
        "ingestible_types": ["pdf"],
    },
    "embedding": {
        "batch_size": 10,
        "batch_delay_seconds": 0.2,
        "max_attempts": 3,
        "retry_backoff_seconds": 1.0,
    },
    "vector_index": {
        "upsert_batch_size": 50,
        "upsert_delay_seconds": 0.1,
        "fetch_batch_size": 100,
    },
    "retrieval": {
        "max_documents": 8,
        "per_doc_limit": 3,
        "max_context_chars": 12_000,
        "snippet_chars": 1_000,
    },
    "chat": {
        "history_limit": 20,
        "flush_interval_seconds": 0.25,
        "replay_slice_chars": 48,
        "replay_delay_seconds": 0.024,
    },
    "summary": {
        "default_chunk_count": 300,
        "max_chunks": 200,
        "part_chars": 6_000,
        "max_parts": 12,
    },
    "topics": {
        "threshold": 0.25,
        "max_labels": 3,
    },
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to overlay; a fresh one is read from
            the environment when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config: dict[str, Any] = {}
    _deep_merge(config, DEFAULTS)

    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
        _deep_merge(config, yaml_config)

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "llm": {
            "chat_model": settings.openai_chat_model,
            "think_model": settings.openai_think_model,
            "web_search_model": settings.openai_web_search_model,
            "fallback_model": settings.openai_fallback_model,
            "tts_model": settings.openai_tts_model,
        },
        "embedding": {
            "model": settings.openai_embedding_model,
            "dimensions": settings.openai_embedding_dimensions,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(config, env_overrides)
    return config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        elif isinstance(value, dict):
            base[key] = {}
            _deep_merge(base[key], value)
        else:
            base[key] = value
