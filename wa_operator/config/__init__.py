"""Configuration module for wa-operator."""

from wa_operator.config.loader import get_config_path, load_config, save_config
from wa_operator.config.schema import Config

__all__ = ["Config", "load_config", "save_config", "get_config_path"]
