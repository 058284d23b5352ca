"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from app.schemas import (
    AggregatedBucketSchema,
    DashboardState,
    DeviceSnapshotSchema,
    SummarySchema,
)
from datastore.reading_store import ReadingStore, build_default_store
from models.errors import DatastoreUnavailable
from services.dashboard import DashboardService, build_default_dashboard
from settings import Settings, get_settings

router = APIRouter()


def get_store() -> ReadingStore:
    return build_default_store()


def get_dashboard() -> DashboardService:
    return build_default_dashboard()


def _unavailable(exc: DatastoreUnavailable) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=str(exc),
    )


@router.get(
    "/devices/latest",
    response_model=List[DeviceSnapshotSchema],
    summary="Most recent reading of every device.",
)
async def latest_devices(
    store: ReadingStore = Depends(get_store),
) -> List[DeviceSnapshotSchema]:
    try:
        snapshots = await run_in_threadpool(store.latest_per_device)
    except DatastoreUnavailable as exc:
        raise _unavailable(exc) from exc
    return [DeviceSnapshotSchema.model_validate(item) for item in snapshots]


@router.get(
    "/history",
    response_model=List[AggregatedBucketSchema],
    summary="Per-bucket mean value by device type over the trailing window.",
)
async def aggregated_history(
    store: ReadingStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> List[AggregatedBucketSchema]:
    try:
        history = await run_in_threadpool(
            store.aggregated_history,
            timedelta(seconds=settings.history_window_seconds),
            timedelta(seconds=settings.history_bucket_seconds),
        )
    except DatastoreUnavailable as exc:
        raise _unavailable(exc) from exc
    return [AggregatedBucketSchema.model_validate(item) for item in history]


@router.get(
    "/dashboard",
    response_model=DashboardState,
    summary="Current scheduler-maintained view model with its summary.",
)
async def dashboard_state(
    dashboard: DashboardService = Depends(get_dashboard),
) -> DashboardState:
    frame = dashboard.frame
    return DashboardState.build(
        frame.view_model,
        frame.summary,
        dashboard.view_model.last_errors,
    )


@router.get(
    "/dashboard/summary",
    response_model=SummarySchema,
    summary="Headline counts and aggregate power.",
)
async def dashboard_summary(
    dashboard: DashboardService = Depends(get_dashboard),
) -> SummarySchema:
    return SummarySchema.from_summary(dashboard.frame.summary)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return await healthcheck()
