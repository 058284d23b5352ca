"""Derivation of map points and chart series from the view model."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from models.errors import MalformedLocation
from models.records import AggregatedBucket, DeviceSnapshot

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]

DEVICE_COLORS: Dict[str, RGB] = {
    "SolarPanel": (217, 119, 87),
    "EVCharger": (240, 238, 230),
}
DEFAULT_COLOR: RGB = (143, 142, 137)
OUTLINE_COLOR: RGB = (20, 20, 19)


def parse_location(location: str) -> Tuple[float, float]:
    """Parse a stored ``"lat,lon"`` string into map order ``(lon, lat)``."""
    parts = location.split(",")
    if len(parts) != 2:
        raise MalformedLocation(location, "expected exactly two comma-separated parts")
    try:
        lat, lon = (float(part.strip()) for part in parts)
    except ValueError:
        raise MalformedLocation(location, "coordinates must be numeric") from None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise MalformedLocation(location, "coordinates must be finite")
    if not -90.0 <= lat <= 90.0:
        raise MalformedLocation(location, "latitude out of range")
    if not -180.0 <= lon <= 180.0:
        raise MalformedLocation(location, "longitude out of range")
    return lon, lat


def color_for(device_type: str) -> RGB:
    return DEVICE_COLORS.get(device_type, DEFAULT_COLOR)


@dataclass(frozen=True)
class CameraState:
    longitude: float = 25.7482
    latitude: float = 63.8266
    zoom: float = 5.0
    pitch: float = 0.0
    bearing: float = 0.0


@dataclass(frozen=True)
class MapPoint:
    device_id: str
    device_type: str
    position: Tuple[float, float]
    fill_color: RGB
    value: float
    unit: str


@dataclass(frozen=True)
class SpatialLayer:
    id: str
    points: Tuple[MapPoint, ...]
    skipped: Tuple[str, ...] = ()
    radius_scale: float = 100.0
    radius_min_pixels: int = 3
    radius_max_pixels: int = 20
    line_color: RGB = OUTLINE_COLOR


class SpatialRenderer:
    """Turns device snapshots into a scatter layer without touching the camera."""

    layer_id = "device-layer"

    def __init__(self, camera: Optional[CameraState] = None) -> None:
        self.camera = camera or CameraState()
        self.layer: Optional[SpatialLayer] = None

    def move_camera(self, **changes: float) -> CameraState:
        self.camera = replace(self.camera, **changes)
        return self.camera

    def render(self, devices: Iterable[DeviceSnapshot]) -> SpatialLayer:
        points: List[MapPoint] = []
        skipped: List[str] = []
        for device in devices:
            try:
                position = parse_location(device.location)
            except MalformedLocation as exc:
                logger.warning(
                    "Skipping device with malformed location",
                    extra={
                        "device_id": device.device_id,
                        "location": device.location,
                        "reason": exc.reason,
                    },
                )
                skipped.append(device.device_id)
                continue
            points.append(
                MapPoint(
                    device_id=device.device_id,
                    device_type=device.device_type,
                    position=position,
                    fill_color=color_for(device.device_type),
                    value=device.value,
                    unit=device.unit,
                )
            )
        self.layer = SpatialLayer(id=self.layer_id, points=tuple(points), skipped=tuple(skipped))
        return self.layer


@dataclass(frozen=True)
class SeriesStyle:
    device_type: str
    stroke: str
    stroke_width: int = 2
    dash: Optional[str] = None


SERIES_STYLES: Dict[str, SeriesStyle] = {
    "SolarPanel": SeriesStyle("SolarPanel", "#d97757", stroke_width=3),
    "EVCharger": SeriesStyle("EVCharger", "#f0eee6"),
    "Sauna": SeriesStyle("Sauna", "#8f8e89"),
    "HeatPump": SeriesStyle("HeatPump", "#8f8e89", dash="5 5"),
}


def style_for(device_type: str) -> SeriesStyle:
    style = SERIES_STYLES.get(device_type)
    if style is None:
        return SeriesStyle(device_type, "#8f8e89")
    return style


@dataclass(frozen=True)
class ChartFrame:
    """Chart rows keyed by bucket; a type absent from a bucket has no key there."""

    points: Tuple[Dict[str, object], ...] = ()
    series: Tuple[SeriesStyle, ...] = field(
        default_factory=lambda: tuple(SERIES_STYLES.values())
    )


class TemporalRenderer:
    """Pivots aggregated buckets into one chart point per bucket."""

    def __init__(self, tz: Optional[tzinfo] = None) -> None:
        self.tz = tz
        self.frame: Optional[ChartFrame] = None

    def format_bucket(self, bucket: datetime) -> str:
        return bucket.astimezone(self.tz).strftime("%H:%M")

    def render(self, history: Iterable[AggregatedBucket]) -> ChartFrame:
        rows: Dict[datetime, Dict[str, object]] = {}
        series = dict(SERIES_STYLES)
        for item in history:
            row = rows.get(item.bucket)
            if row is None:
                row = {"bucket": self.format_bucket(item.bucket), "timestamp": item.bucket}
                rows[item.bucket] = row
            row[item.device_type] = item.avg_value
            if item.device_type not in series:
                series[item.device_type] = style_for(item.device_type)
        self.frame = ChartFrame(points=tuple(rows.values()), series=tuple(series.values()))
        return self.frame
