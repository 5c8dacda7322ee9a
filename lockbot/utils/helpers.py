"""Utility functions for lockbot."""

import os
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the lockbot data directory.

    Respects LOCKBOT_HOME environment variable; falls back to ~/.lockbot.
    """
    lockbot_home = os.environ.get("LOCKBOT_HOME", "").strip()
    if lockbot_home:
        return ensure_dir(Path(lockbot_home))
    return ensure_dir(Path.home() / ".lockbot")


def get_logs_path() -> Path:
    """Get the logs directory (~/.lockbot/logs)."""
    return ensure_dir(get_data_path() / "logs")
