"""Configuration module: exports Settings, load_config, and the topic taxonomy."""

from notemind.config.loader import load_config
from notemind.config.settings import Settings
from notemind.config.topics import PLACEHOLDER_TAG, TOPICS

__all__ = ["PLACEHOLDER_TAG", "Settings", "TOPICS", "load_config"]
