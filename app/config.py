"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


DEFAULT_CHUNK_SIZE = 1000


@dataclass(frozen=True)
class BatchUploadSettings:
    """
    Runtime settings for certification batch uploads.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    storage_root: str = "data/object-storage"
    signed_url_expiry_seconds: int = 3600
    notifications_enabled: bool = True


@lru_cache(maxsize=1)
def get_batch_upload_settings() -> BatchUploadSettings:
    """
    Return cached batch upload settings from environment variables.
    """

    return BatchUploadSettings(
        chunk_size=max(1, _get_int_env("BATCH_UPLOAD_CHUNK_SIZE", DEFAULT_CHUNK_SIZE)),
        storage_root=_get_str_env("BATCH_UPLOAD_STORAGE_ROOT", "data/object-storage"),
        signed_url_expiry_seconds=max(
            1, _get_int_env("BATCH_UPLOAD_SIGNED_URL_EXPIRY_SECONDS", 3600)
        ),
        notifications_enabled=_get_bool_env("BATCH_UPLOAD_NOTIFICATIONS_ENABLED", True),
    )
