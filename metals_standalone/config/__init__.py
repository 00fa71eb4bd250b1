"""Configuration module for metals-standalone."""

from metals_standalone.config.loader import get_config_path, load_config
from metals_standalone.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
