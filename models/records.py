"""Domain records shared by the store, the aggregation pipeline and the renderers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Reading:
    """One timestamped observation from a device, as stored."""

    device_id: str
    device_type: str
    value: float
    unit: str
    location: str
    time: datetime


@dataclass(frozen=True, slots=True)
class DeviceSnapshot:
    """The most recent reading of a single device."""

    device_id: str
    device_type: str
    value: float
    unit: str
    location: str
    time: datetime

    @classmethod
    def from_reading(cls, reading: Reading) -> "DeviceSnapshot":
        return cls(
            device_id=reading.device_id,
            device_type=reading.device_type,
            value=reading.value,
            unit=reading.unit,
            location=reading.location,
            time=reading.time,
        )


@dataclass(frozen=True, slots=True)
class AggregatedBucket:
    """Mean value of one device type within one time bucket."""

    bucket: datetime
    device_type: str
    avg_value: float
