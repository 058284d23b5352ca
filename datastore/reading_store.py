from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Tuple

from datastore.pool import ConnectionPool
from models.errors import DatastoreUnavailable
from models.records import AggregatedBucket, DeviceSnapshot, Reading
from services.aggregator import DEFAULT_BUCKET, DEFAULT_WINDOW, Aggregator, as_utc
from settings import get_settings

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("device_id", "device_type", "value", "unit", "location", "time")


class ReadingStore:
    """Append-only table of readings, optionally mirrored to a JSON lines file.

    The file is the source of truth when configured: an external writer may
    append to it at any time and every query picks up what it finds there.
    """

    def __init__(
        self,
        name: str,
        persistence_path: Optional[Path] = None,
        pool: Optional[ConnectionPool] = None,
        aggregator: Optional[Aggregator] = None,
    ) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self.pool = pool or ConnectionPool()
        self.aggregator = aggregator or Aggregator()
        self._readings: List[Reading] = []
        self._file_state: Optional[Tuple[float, int]] = None
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, reading: Reading) -> None:
        self.extend([reading])

    def extend(self, readings: Iterable[Reading]) -> None:
        # Held in memory exactly as a reload would decode them: UTC-aware times.
        batch = [replace(item, time=as_utc(item.time)) for item in readings]
        if not batch:
            return
        with self._lock:
            self._reload_if_changed()
            if self.persistence_path:
                lines = "".join(json.dumps(encode_reading(item)) + "\n" for item in batch)
                try:
                    with self.persistence_path.open("a", encoding="utf-8") as handle:
                        handle.write(lines)
                except OSError as exc:
                    raise DatastoreUnavailable(
                        f"Cannot write to reading store {self.name!r}: {exc}"
                    ) from exc
            self._readings.extend(batch)
            self._file_state = self._stat()

    def scan(self) -> List[Reading]:
        """Return every stored reading in append order."""
        with self.pool.connection():
            with self._lock:
                self._reload_if_changed()
                return list(self._readings)

    def latest_per_device(self) -> List[DeviceSnapshot]:
        readings = self.scan()
        snapshots = self.aggregator.latest_per_device(readings)
        logger.debug(
            "Computed device snapshot",
            extra={"row_count": len(snapshots)},
        )
        return snapshots

    def aggregated_history(
        self,
        window: timedelta = DEFAULT_WINDOW,
        bucket: timedelta = DEFAULT_BUCKET,
        now: Optional[datetime] = None,
    ) -> List[AggregatedBucket]:
        readings = self.scan()
        history = self.aggregator.windowed_averages(
            readings, now=now, window=window, bucket=bucket
        )
        logger.debug(
            "Computed aggregated history",
            extra={"row_count": len(history)},
        )
        return history

    def _stat(self) -> Optional[Tuple[float, int]]:
        if not self.persistence_path or not self.persistence_path.exists():
            return None
        stat = self.persistence_path.stat()
        return stat.st_mtime, stat.st_size

    def _reload_if_changed(self) -> None:
        if not self.persistence_path:
            return
        try:
            state = self._stat()
            if state == self._file_state:
                return
            if state is None:
                self._readings = []
                self._file_state = None
                return
            raw = self.persistence_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DatastoreUnavailable(
                f"Cannot read reading store {self.name!r}: {exc}"
            ) from exc

        readings: List[Reading] = []
        for line_number, line in enumerate(raw.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                readings.append(decode_reading(json.loads(line)))
            except (json.JSONDecodeError, ValueError, TypeError, KeyError) as exc:
                raise DatastoreUnavailable(
                    f"Reading store {self.name!r} has a corrupt row at line {line_number}: {exc}"
                ) from exc

        self._readings = readings
        self._file_state = state
        logger.debug("Reloaded reading store", extra={"row_count": len(readings)})


def encode_reading(reading: Reading) -> Dict[str, Any]:
    return {
        "device_id": reading.device_id,
        "device_type": reading.device_type,
        "value": reading.value,
        "unit": reading.unit,
        "location": reading.location,
        "time": reading.time.isoformat(),
    }


def decode_reading(payload: Dict[str, Any]) -> Reading:
    missing = [name for name in _REQUIRED_FIELDS if name not in payload]
    if missing:
        raise KeyError(f"missing fields: {', '.join(missing)}")
    return Reading(
        device_id=str(payload["device_id"]),
        device_type=str(payload["device_type"]),
        value=float(payload["value"]),
        unit=str(payload["unit"]),
        location=str(payload["location"]),
        time=parse_timestamp(str(payload["time"])),
    )


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


@lru_cache
def build_default_store(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> ReadingStore:
    settings = get_settings()
    store_name = settings.store_name if name is None else name
    store_path = settings.store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    pool = ConnectionPool(size=settings.pool_size, acquire_timeout=settings.acquire_timeout)
    return ReadingStore(name=store_name, persistence_path=persistence, pool=pool)
