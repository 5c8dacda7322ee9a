"""Configuration loading utilities."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from lockbot.config.schema import DEFAULT_PREFIX, Config
from lockbot.errors import ConfigError

# Values stored verbatim; their inner keys belong to the platform.
OPAQUE_KEYS = frozenset({"cookies"})

_SNAKE_OVERRIDES = {"adminID": "admin_id"}
_CAMEL_OVERRIDES = {v: k for k, v in _SNAKE_OVERRIDES.items()}


def get_config_path() -> Path:
    """Get the default configuration file path."""
    from lockbot.utils.helpers import get_data_path

    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.

    Raises:
        ConfigError: The file exists but is unreadable, not JSON, or violates the schema.
    """
    path = config_path or get_config_path()

    if not path.exists():
        return Config()

    try:
        with open(path) as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError("Config root must be a JSON object")
        return Config.model_validate(convert_keys(raw))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    _atomic_write_config(path, config)


def _atomic_write_config(path: Path, config: Config) -> None:
    """Atomically write config as camelCase JSON with secure permissions."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = convert_to_camel(config.model_dump())
    tmp_name = f".{path.name}.tmp-{os.getpid()}"
    tmp_path = path.with_name(tmp_name)
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2)
    try:
        tmp_path.chmod(0o600)
    except OSError:
        pass
    os.replace(tmp_path, path)
    try:
        path.chmod(0o600)
    except OSError:
        pass


class CredentialStore:
    """Reads and merges the single flat config document holding session state."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or get_config_path()

    def load(self) -> Config:
        return load_config(self.path)

    def save(self, config: Config) -> None:
        save_config(config, self.path)

    def _current(self) -> Config:
        try:
            return self.load()
        except ConfigError as e:
            logger.warning(f"Replacing unreadable config: {e}")
            return Config()

    def save_credentials(self, cookies: list[Any], bot_nickname: str) -> Config:
        """Persist the live credential blob and display name, keeping other settings."""
        updated = self._current().model_copy(
            update={"cookies": list(cookies), "bot_nickname": bot_nickname}
        )
        self.save(updated)
        return updated

    def save_settings(self, *, cookies: list[Any], prefix: str, admin_id: str) -> Config:
        """Persist an operator-submitted configuration."""
        updated = self._current().model_copy(
            update={"cookies": list(cookies), "prefix": prefix, "admin_id": admin_id}
        )
        self.save(updated)
        return updated


@dataclass(frozen=True, slots=True)
class ConfigSubmission:
    """Validated operator configuration from the dashboard or CLI."""

    cookies: list[Any]
    prefix: str
    admin_id: str


def validate_submission(cookies_json: str | None, prefix: str | None, admin_id: str | None) -> ConfigSubmission:
    """Validate a cookies/prefix/adminID submission.

    Raises:
        ConfigError: With a message suitable for returning to the operator.
    """
    try:
        cookies = json.loads(cookies_json or "")
    except ValueError as e:
        raise ConfigError("Error: Invalid configuration. Please check your input.") from e

    if not isinstance(cookies, list) or not cookies:
        raise ConfigError("Error: Invalid cookies format. Please provide a valid JSON array of cookies.")

    admin = (admin_id or "").strip()
    if not admin:
        raise ConfigError("Error: Admin ID is required.")

    return ConfigSubmission(cookies=cookies, prefix=(prefix or "").strip() or DEFAULT_PREFIX, admin_id=admin)


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {
            camel_to_snake(k): (v if camel_to_snake(k) in OPAQUE_KEYS else convert_keys(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): (v if k in OPAQUE_KEYS else convert_to_camel(v)) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    if name in _SNAKE_OVERRIDES:
        return _SNAKE_OVERRIDES[name]
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    if name in _CAMEL_OVERRIDES:
        return _CAMEL_OVERRIDES[name]
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
