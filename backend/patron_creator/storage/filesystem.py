"""Filesystem helpers for the ~/.patron-creator/ directory.

Provides path resolution and directory creation for the .env file.
"""

from __future__ import annotations

from pathlib import Path

from patron_creator.config import ENV_FILENAME, get_base_dir


def ensure_directories() -> None:
    """Create ~/.patron-creator/ if it does not exist."""
    get_base_dir().mkdir(parents=True, exist_ok=True)


def get_env_path() -> Path:
    """Return the path to ~/.patron-creator/.env."""
    return get_base_dir() / ENV_FILENAME
