from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_DEVICES_INTERVAL = 2.0
DEFAULT_HISTORY_INTERVAL = 5.0
DEFAULT_TIMEOUT = 10.0

_BASE_URL_ENV = "API_BASE_URL"
_DEVICES_INTERVAL_ENV = "CLI_DEVICES_INTERVAL"
_HISTORY_INTERVAL_ENV = "CLI_HISTORY_INTERVAL"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    devices_interval: float = DEFAULT_DEVICES_INTERVAL
    history_interval: float = DEFAULT_HISTORY_INTERVAL
    timeout: float = DEFAULT_TIMEOUT


def _read_float(value: Optional[str], default: float) -> float:
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


def load_config(
    base_url: Optional[str] = None,
    devices_interval: Optional[float] = None,
    history_interval: Optional[float] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if devices_interval is None:
        devices_interval = _read_float(os.getenv(_DEVICES_INTERVAL_ENV), DEFAULT_DEVICES_INTERVAL)
    if history_interval is None:
        history_interval = _read_float(os.getenv(_HISTORY_INTERVAL_ENV), DEFAULT_HISTORY_INTERVAL)
    return CLIConfig(
        base_url=url.rstrip("/"),
        devices_interval=devices_interval,
        history_interval=history_interval,
    )
