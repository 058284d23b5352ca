"""Periodic refresh of the view model's devices and history slices."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set

from models.errors import DatastoreUnavailable
from services.sources import ReadingSource
from services.view_model import DEVICES, HISTORY, SLICES, ViewModel, ViewModelStore

logger = logging.getLogger(__name__)

DEFAULT_DEVICES_INTERVAL = 2.0
DEFAULT_HISTORY_INTERVAL = 5.0


async def hydrate(source: ReadingSource, view_model: ViewModelStore) -> ViewModel:
    """Fetch the devices and history pair once and seed ``view_model`` with it.

    Errors propagate to the caller; nothing is seeded on failure.
    """
    devices, history = await asyncio.gather(
        source.latest_per_device(),
        source.aggregated_history(),
    )
    model = view_model.seed(devices, history)
    logger.info(
        "Hydrated view model",
        extra={"row_count": len(devices) + len(history), "version": model.version},
    )
    return model


class RefreshScheduler:
    """Two independent timers, each re-querying one slice of the view model.

    Every tick launches its fetch as a separate task and does not wait for
    it, so fetches may overlap. Whichever fetch completes last replaces the
    slice. A failed fetch leaves the slice as it was.
    """

    def __init__(
        self,
        source: ReadingSource,
        view_model: ViewModelStore,
        devices_interval: float = DEFAULT_DEVICES_INTERVAL,
        history_interval: float = DEFAULT_HISTORY_INTERVAL,
    ) -> None:
        if devices_interval <= 0 or history_interval <= 0:
            raise ValueError("Refresh intervals must be positive.")
        self.source = source
        self.view_model = view_model
        self.intervals: Dict[str, float] = {
            DEVICES: devices_interval,
            HISTORY: history_interval,
        }
        self._fetchers: Dict[str, Callable[[], Awaitable[Sequence]]] = {
            DEVICES: source.latest_per_device,
            HISTORY: source.aggregated_history,
        }
        self._appliers: Dict[str, Callable[[Sequence], ViewModel]] = {
            DEVICES: view_model.replace_devices,
            HISTORY: view_model.replace_history,
        }
        self._timers: List[asyncio.Task] = []
        self._in_flight: Set[asyncio.Task] = set()
        self._stopped = False

    @property
    def running(self) -> bool:
        return bool(self._timers) and not self._stopped

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def start(self) -> None:
        """Start both timers. Must be called from within the running event loop."""
        if not self.view_model.hydrated:
            raise RuntimeError("Hydrate the view model before starting the scheduler.")
        if self.running:
            return
        self._stopped = False
        self._timers = [
            asyncio.create_task(self._run_timer(name), name=f"refresh-{name}")
            for name in SLICES
        ]
        logger.info(
            "Refresh scheduler started",
            extra={"reason": f"devices every {self.intervals[DEVICES]}s, history every {self.intervals[HISTORY]}s"},
        )

    def trigger(self, slice_name: str) -> Optional[asyncio.Task]:
        """Fire one tick for ``slice_name`` now; returns the fetch task."""
        if slice_name not in self._fetchers:
            raise ValueError(f"Unknown view model slice {slice_name!r}.")
        if self._stopped or not self.view_model.hydrated:
            return None
        task = asyncio.create_task(self._fetch(slice_name))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def stop(self) -> None:
        """Cancel both timers and every in-flight fetch. Safe to call repeatedly."""
        self._stopped = True
        tasks = [*self._timers, *self._in_flight]
        self._timers = []
        self._in_flight.clear()
        if not tasks:
            return
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Refresh scheduler stopped")

    async def _run_timer(self, slice_name: str) -> None:
        interval = self.intervals[slice_name]
        while not self._stopped:
            await asyncio.sleep(interval)
            self.trigger(slice_name)

    async def _fetch(self, slice_name: str) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            result = await self._fetchers[slice_name]()
        except DatastoreUnavailable as exc:
            if self._stopped:
                return
            logger.warning(
                "Refresh failed; keeping previous data",
                extra={"slice": slice_name, "reason": str(exc)},
            )
            self.view_model.report_error(slice_name, exc)
            return
        except Exception as exc:
            if self._stopped:
                return
            logger.exception(
                "Unexpected refresh failure; keeping previous data",
                extra={"slice": slice_name},
            )
            self.view_model.report_error(slice_name, exc)
            return

        if self._stopped:
            return
        model = self._appliers[slice_name](result)
        logger.debug(
            "Refreshed view model slice",
            extra={
                "slice": slice_name,
                "row_count": len(result),
                "elapsed_ms": int((loop.time() - started) * 1000),
                "version": model.version,
            },
        )
