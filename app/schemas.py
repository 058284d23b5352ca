"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.records import AggregatedBucket, DeviceSnapshot
from services.summary import Summary
from services.view_model import ViewModel


class DeviceSnapshotSchema(BaseModel):
    """Latest known reading of one device."""

    model_config = ConfigDict(from_attributes=True)

    device_id: str
    device_type: str
    value: float
    unit: str
    location: str = Field(..., description='Position encoded as "lat,lon".')
    time: datetime

    def to_record(self) -> DeviceSnapshot:
        return DeviceSnapshot(**self.model_dump())


class AggregatedBucketSchema(BaseModel):
    """Mean value of a device type within one time bucket."""

    model_config = ConfigDict(from_attributes=True)

    bucket: datetime = Field(..., description="Start of the bucket (UTC).")
    device_type: str
    avg_value: float

    def to_record(self) -> AggregatedBucket:
        return AggregatedBucket(**self.model_dump())


class SummarySchema(BaseModel):
    """Headline figures for the current device snapshot."""

    device_count: int = Field(..., ge=0)
    total_power: float
    active_devices: int = Field(..., ge=0)
    units: List[str] = Field(default_factory=list)
    mixed_units: bool = Field(
        default=False,
        description="True when total_power adds values reported in different units.",
    )

    @classmethod
    def from_summary(cls, summary: Summary) -> "SummarySchema":
        return cls(
            device_count=summary.device_count,
            total_power=summary.total_power,
            active_devices=summary.active_devices,
            units=list(summary.units),
            mixed_units=summary.mixed_units,
        )


class DashboardState(BaseModel):
    """The scheduler-maintained view model as served to clients."""

    version: int = Field(..., ge=0)
    devices: List[DeviceSnapshotSchema] = Field(default_factory=list)
    history: List[AggregatedBucketSchema] = Field(default_factory=list)
    summary: SummarySchema
    devices_refreshed_at: Optional[datetime] = None
    history_refreshed_at: Optional[datetime] = None
    errors: Dict[str, str] = Field(
        default_factory=dict,
        description="Latest refresh failure per slice; cleared by the next success.",
    )

    @classmethod
    def build(
        cls,
        view_model: ViewModel,
        summary: Summary,
        errors: Dict[str, str],
    ) -> "DashboardState":
        return cls(
            version=view_model.version,
            devices=[DeviceSnapshotSchema.model_validate(item) for item in view_model.devices],
            history=[AggregatedBucketSchema.model_validate(item) for item in view_model.history],
            summary=SummarySchema.from_summary(summary),
            devices_refreshed_at=view_model.devices_refreshed_at,
            history_refreshed_at=view_model.history_refreshed_at,
            errors=errors,
        )
