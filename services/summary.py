"""Headline figures derived from the current device snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Tuple

from models.records import DeviceSnapshot


@dataclass(frozen=True)
class Summary:
    """Device count, summed power and the units behind that sum."""

    device_count: int = 0
    total_power: float = 0.0
    active_devices: int = 0
    units: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def mixed_units(self) -> bool:
        # total_power adds values across units as-is; this flags when that sum is suspect.
        return len(self.units) > 1


def summarize(devices: Iterable[DeviceSnapshot]) -> Summary:
    count = 0
    total = 0.0
    units = set()
    for device in devices:
        count += 1
        total += device.value
        units.add(device.unit)
    # No liveness check exists yet, so every reporting device counts as active.
    return Summary(
        device_count=count,
        total_power=total,
        active_devices=count,
        units=tuple(sorted(units)),
    )
