from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_NAME_ENV = "READING_STORE_NAME"
_STORE_PATH_ENV = "READING_STORE_PATH"
_POOL_SIZE_ENV = "READING_STORE_POOL_SIZE"
_ACQUIRE_TIMEOUT_ENV = "READING_STORE_ACQUIRE_TIMEOUT"
_WINDOW_ENV = "HISTORY_WINDOW_SECONDS"
_BUCKET_ENV = "HISTORY_BUCKET_SECONDS"
_DEVICES_INTERVAL_ENV = "DEVICES_REFRESH_SECONDS"
_HISTORY_INTERVAL_ENV = "HISTORY_REFRESH_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    store_name: str
    store_path: Optional[str]
    pool_size: int
    acquire_timeout: float
    history_window_seconds: int
    history_bucket_seconds: int
    devices_refresh_seconds: float
    history_refresh_seconds: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_name=_read_str_env(_STORE_NAME_ENV, "iot_data"),
        store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/readings.jsonl"),
        pool_size=_read_positive_int(_POOL_SIZE_ENV, 10),
        acquire_timeout=_read_positive_float(_ACQUIRE_TIMEOUT_ENV, 5.0),
        history_window_seconds=_read_positive_int(_WINDOW_ENV, 3600),
        history_bucket_seconds=_read_positive_int(_BUCKET_ENV, 60),
        devices_refresh_seconds=_read_positive_float(_DEVICES_INTERVAL_ENV, 2.0),
        history_refresh_seconds=_read_positive_float(_HISTORY_INTERVAL_ENV, 5.0),
        log_level=_read_log_level("INFO"),
    )
