"""Reduction of raw readings into device snapshots and windowed buckets."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from models.records import AggregatedBucket, DeviceSnapshot, Reading

DEFAULT_WINDOW = timedelta(hours=1)
DEFAULT_BUCKET = timedelta(minutes=1)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Return ``moment`` in UTC, reading naive values as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def floor_to_bucket(moment: datetime, bucket: timedelta) -> datetime:
    """Align ``moment`` to the start of its bucket, counting buckets from the UNIX epoch."""
    moment = as_utc(moment)
    offset = (moment - _EPOCH) // bucket
    return _EPOCH + offset * bucket


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def latest_per_device(self, readings: Iterable[Reading]) -> List[DeviceSnapshot]:
        """Return one snapshot per device id, holding its most recent reading.

        Readings sharing the maximum ``time`` are resolved by the highest
        ``value``; a full tie keeps the reading seen first. Output is ordered
        by ``device_id``.
        """
        latest: Dict[str, Reading] = {}

        for reading in readings:
            reading = _normalized(reading)
            current = latest.get(reading.device_id)
            if current is None or _sort_key(reading) > _sort_key(current):
                latest[reading.device_id] = reading

        return [DeviceSnapshot.from_reading(latest[key]) for key in sorted(latest)]

    def windowed_averages(
        self,
        readings: Iterable[Reading],
        now: Optional[datetime] = None,
        window: timedelta = DEFAULT_WINDOW,
        bucket: timedelta = DEFAULT_BUCKET,
    ) -> List[AggregatedBucket]:
        """Average ``value`` per (bucket, device_type) over readings newer than ``now - window``.

        Keys without readings produce no row. Rows are ordered by bucket,
        then by device type.
        """
        if window <= timedelta(0):
            raise ValueError("Aggregation window must be positive.")
        if bucket <= timedelta(0):
            raise ValueError("Aggregation bucket must be positive.")

        reference = as_utc(now or datetime.now(timezone.utc))
        cutoff = reference - window

        totals: Dict[Tuple[datetime, str], float] = {}
        counts: Dict[Tuple[datetime, str], int] = {}

        for reading in readings:
            moment = as_utc(reading.time)
            if moment <= cutoff:
                continue
            key = (floor_to_bucket(moment, bucket), reading.device_type)
            totals[key] = totals.get(key, 0.0) + reading.value
            counts[key] = counts.get(key, 0) + 1

        return [
            AggregatedBucket(bucket=key[0], device_type=key[1], avg_value=totals[key] / counts[key])
            for key in sorted(totals)
        ]


def _sort_key(reading: Reading) -> Tuple[datetime, float]:
    return reading.time, reading.value


def _normalized(reading: Reading) -> Reading:
    if reading.time.tzinfo is timezone.utc:
        return reading
    return replace(reading, time=as_utc(reading.time))
