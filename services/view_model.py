"""In-memory view model shared by the refresh scheduler and the renderers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from models.records import AggregatedBucket, DeviceSnapshot

logger = logging.getLogger(__name__)

DEVICES = "devices"
HISTORY = "history"
SLICES = (DEVICES, HISTORY)

Listener = Callable[["ViewModel"], None]
ErrorListener = Callable[[str, BaseException], None]


@dataclass(frozen=True)
class ViewModel:
    """Immutable pair of slices; every refresh produces a new instance."""

    devices: Tuple[DeviceSnapshot, ...] = ()
    history: Tuple[AggregatedBucket, ...] = ()
    version: int = 0
    devices_refreshed_at: Optional[datetime] = None
    history_refreshed_at: Optional[datetime] = None


@dataclass
class _Subscribers:
    changes: List[Listener] = field(default_factory=list)
    errors: List[ErrorListener] = field(default_factory=list)


class ViewModelStore:
    """Owns the current :class:`ViewModel` and notifies subscribers on replacement.

    Only the refresh scheduler writes here; renderers subscribe and read.
    All calls are expected to come from a single event loop thread.
    """

    def __init__(self) -> None:
        self._current = ViewModel()
        self._hydrated = False
        self._subscribers = _Subscribers()
        self._last_errors: Dict[str, str] = {}

    @property
    def current(self) -> ViewModel:
        return self._current

    @property
    def hydrated(self) -> bool:
        return self._hydrated

    @property
    def last_errors(self) -> Dict[str, str]:
        return dict(self._last_errors)

    def seed(
        self,
        devices: Sequence[DeviceSnapshot],
        history: Sequence[AggregatedBucket],
    ) -> ViewModel:
        """Install the initial pair fetched before any scheduled refresh."""
        now = _utcnow()
        self._hydrated = True
        self._last_errors.clear()
        return self._install(
            replace(
                self._current,
                devices=tuple(devices),
                history=tuple(history),
                devices_refreshed_at=now,
                history_refreshed_at=now,
            )
        )

    def replace_devices(self, devices: Sequence[DeviceSnapshot]) -> ViewModel:
        self._last_errors.pop(DEVICES, None)
        return self._install(
            replace(self._current, devices=tuple(devices), devices_refreshed_at=_utcnow())
        )

    def replace_history(self, history: Sequence[AggregatedBucket]) -> ViewModel:
        self._last_errors.pop(HISTORY, None)
        return self._install(
            replace(self._current, history=tuple(history), history_refreshed_at=_utcnow())
        )

    def report_error(self, slice_name: str, error: BaseException) -> None:
        """Record a failed refresh without touching the displayed data."""
        if slice_name not in SLICES:
            raise ValueError(f"Unknown view model slice {slice_name!r}.")
        self._last_errors[slice_name] = str(error)
        for listener in list(self._subscribers.errors):
            try:
                listener(slice_name, error)
            except Exception:
                logger.exception("Error listener failed", extra={"slice": slice_name})

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._subscribers.changes.append(listener)
        return lambda: _discard(self._subscribers.changes, listener)

    def subscribe_errors(self, listener: ErrorListener) -> Callable[[], None]:
        self._subscribers.errors.append(listener)
        return lambda: _discard(self._subscribers.errors, listener)

    def _install(self, candidate: ViewModel) -> ViewModel:
        model = replace(candidate, version=self._current.version + 1)
        self._current = model
        for listener in list(self._subscribers.changes):
            try:
                listener(model)
            except Exception:
                logger.exception("View model listener failed", extra={"version": model.version})
        return model


def _discard(listeners: list, listener: object) -> None:
    try:
        listeners.remove(listener)
    except ValueError:
        pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
