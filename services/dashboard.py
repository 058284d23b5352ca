"""Wiring of source, view model, scheduler and renderers into one dashboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Callable, List, Optional

from datastore.reading_store import build_default_store
from models.errors import DatastoreUnavailable
from services.renderers import ChartFrame, SpatialLayer, SpatialRenderer, TemporalRenderer
from services.scheduler import (
    DEFAULT_DEVICES_INTERVAL,
    DEFAULT_HISTORY_INTERVAL,
    RefreshScheduler,
    hydrate,
)
from services.sources import ReadingSource, StoreReadingSource
from services.summary import Summary, summarize
from services.view_model import DEVICES, HISTORY, ViewModel, ViewModelStore
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardFrame:
    """Everything a rendering surface needs, derived from one view model version."""

    view_model: ViewModel
    summary: Summary
    layer: SpatialLayer
    chart: ChartFrame


class DashboardService:
    """Keeps a view model fresh and re-derives the rendered frame on every change."""

    def __init__(
        self,
        source: ReadingSource,
        devices_interval: float = DEFAULT_DEVICES_INTERVAL,
        history_interval: float = DEFAULT_HISTORY_INTERVAL,
        spatial: Optional[SpatialRenderer] = None,
        temporal: Optional[TemporalRenderer] = None,
    ) -> None:
        self.source = source
        self.view_model = ViewModelStore()
        self.scheduler = RefreshScheduler(
            source,
            self.view_model,
            devices_interval=devices_interval,
            history_interval=history_interval,
        )
        self.spatial = spatial or SpatialRenderer()
        self.temporal = temporal or TemporalRenderer()
        self.frame = self._derive(self.view_model.current, None)
        self._unsubscribers: List[Callable[[], None]] = []

    async def start(self) -> None:
        """Hydrate, then hand over to the scheduler."""
        if not self._unsubscribers:
            self._unsubscribers.append(self.view_model.subscribe(self._on_change))
        try:
            await hydrate(self.source, self.view_model)
        except DatastoreUnavailable as exc:
            logger.warning(
                "Initial fetch failed; starting with an empty dashboard",
                extra={"reason": str(exc)},
            )
            self.view_model.seed([], [])
            self.view_model.report_error(DEVICES, exc)
            self.view_model.report_error(HISTORY, exc)
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        while self._unsubscribers:
            self._unsubscribers.pop()()

    def _on_change(self, model: ViewModel) -> None:
        self.frame = self._derive(model, self.frame)

    def _derive(self, model: ViewModel, previous: Optional[DashboardFrame]) -> DashboardFrame:
        # Each slice is re-rendered only when it was actually replaced.
        if previous is not None and previous.view_model.devices is model.devices:
            summary, layer = previous.summary, previous.layer
        else:
            summary, layer = summarize(model.devices), self.spatial.render(model.devices)
        if previous is not None and previous.view_model.history is model.history:
            chart = previous.chart
        else:
            chart = self.temporal.render(model.history)
        return DashboardFrame(view_model=model, summary=summary, layer=layer, chart=chart)


@lru_cache
def build_default_dashboard() -> DashboardService:
    """Factory that wires the dashboard to the configured reading store."""
    settings = get_settings()
    source = StoreReadingSource(
        build_default_store(),
        window=timedelta(seconds=settings.history_window_seconds),
        bucket=timedelta(seconds=settings.history_bucket_seconds),
    )
    return DashboardService(
        source,
        devices_interval=settings.devices_refresh_seconds,
        history_interval=settings.history_refresh_seconds,
    )
