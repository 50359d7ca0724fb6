"""Configuration management for patron-creator.

Loads environment variables from ~/.patron-creator/.env and provides
accessors for ILS credentials, the address vendor, the barcode store and
server settings.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from patron_creator.errors import ConfigurationError

DEFAULT_PORT: int = 8395
DEFAULT_BARCODE_PREFIX: str = "28888"
DEFAULT_HTTP_TIMEOUT: float = 10.0
DEFAULT_SO_API_URL: str = "https://ws.serviceobjects.com/AV3/api.svc/GetBestMatchesJSON"

ENV_FILENAME: str = ".env"
DB_FILENAME: str = "barcodes.db"

ILS_ENV_VARS: tuple[str, ...] = (
    "ILS_CLIENT_KEY",
    "ILS_CLIENT_SECRET",
    "ILS_CREATE_TOKEN_URL",
    "ILS_CREATE_PATRON_URL",
    "ILS_FIND_VALUE_URL",
)


def get_base_dir() -> Path:
    return Path("~/.patron-creator").expanduser()


def get_port() -> int:
    _ensure_env_loaded()
    raw = os.getenv("PATRON_CREATOR_PORT")
    if raw is not None:
        try:
            return int(raw)
        except ValueError:
            pass
    return DEFAULT_PORT


def get_http_timeout() -> float:
    _ensure_env_loaded()
    raw = os.getenv("HTTP_TIMEOUT_SECONDS")
    if raw is not None:
        try:
            return float(raw)
        except ValueError:
            pass
    return DEFAULT_HTTP_TIMEOUT


def get_database_url() -> str:
    _ensure_env_loaded()
    url = os.getenv("PATRON_CREATOR_DB_URL", "").strip()
    if url:
        return url
    return f"sqlite:///{get_base_dir() / DB_FILENAME}"


def get_barcode_prefix() -> str:
    _ensure_env_loaded()
    return os.getenv("BARCODE_PREFIX", DEFAULT_BARCODE_PREFIX).strip()


def get_so_api_url() -> str:
    _ensure_env_loaded()
    return os.getenv("SO_API_URL", DEFAULT_SO_API_URL).strip()


def get_so_license_key() -> str | None:
    _ensure_env_loaded()
    return os.getenv("SO_LICENSE_KEY") or None


def get_required(*names: str) -> dict[str, str]:
    """Return the values of *names*, raising if any of them is unset.

    Raises
    ------
    ConfigurationError
        Listing every missing variable at once.
    """
    _ensure_env_loaded()
    values = {name: os.getenv(name, "").strip() for name in names}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )
    return values


def get_ils_settings() -> dict[str, str]:
    return get_required(*ILS_ENV_VARS)


_env_loaded: bool = False


def _ensure_env_loaded() -> None:
    global _env_loaded
    if _env_loaded:
        return
    env_path = get_base_dir() / ENV_FILENAME
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)
    _env_loaded = True


def reload_env() -> None:
    global _env_loaded
    _env_loaded = False
    _ensure_env_loaded()
