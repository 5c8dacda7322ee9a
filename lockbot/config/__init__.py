"""Configuration module for lockbot."""

from lockbot.config.loader import CredentialStore, get_config_path, load_config, save_config
from lockbot.config.schema import Config

__all__ = ["Config", "CredentialStore", "get_config_path", "load_config", "save_config"]
