"""Tests for hydration and the periodic refresh scheduler."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List

import pytest

from models.errors import DatastoreUnavailable
from models.records import AggregatedBucket, DeviceSnapshot
from services.scheduler import RefreshScheduler, hydrate
from services.view_model import DEVICES, HISTORY, ViewModelStore

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def _device(device_id: str, value: float = 1.0) -> DeviceSnapshot:
    return DeviceSnapshot(
        device_id=device_id,
        device_type="Sauna",
        value=value,
        unit="kW",
        location="61.4978,23.7608",
        time=T0,
    )


def _bucket(value: float) -> AggregatedBucket:
    return AggregatedBucket(bucket=T0, device_type="Sauna", avg_value=value)


class ControlledSource:
    """Device fetches block until the test resolves them."""

    def __init__(self) -> None:
        self.pending: List[asyncio.Future] = []
        self.history: List[AggregatedBucket] = [_bucket(1.0)]

    async def latest_per_device(self) -> List[DeviceSnapshot]:
        future = asyncio.get_running_loop().create_future()
        self.pending.append(future)
        return await future

    async def aggregated_history(self) -> List[AggregatedBucket]:
        return list(self.history)


class CountingSource:
    def __init__(self) -> None:
        self.device_calls = 0
        self.history_calls = 0

    async def latest_per_device(self) -> List[DeviceSnapshot]:
        self.device_calls += 1
        return [_device("dev", float(self.device_calls))]

    async def aggregated_history(self) -> List[AggregatedBucket]:
        self.history_calls += 1
        return [_bucket(float(self.history_calls))]


class FailingSource:
    async def latest_per_device(self) -> List[DeviceSnapshot]:
        raise DatastoreUnavailable("database is down")

    async def aggregated_history(self) -> List[AggregatedBucket]:
        raise DatastoreUnavailable("database is down")


def _seeded_store() -> ViewModelStore:
    store = ViewModelStore()
    store.seed([_device("seed")], [_bucket(0.5)])
    return store


def test_hydrate_seeds_both_slices() -> None:
    store = ViewModelStore()

    model = asyncio.run(hydrate(CountingSource(), store))

    assert store.hydrated is True
    assert model.devices == (_device("dev", 1.0),)
    assert model.history == (_bucket(1.0),)


def test_hydrate_failure_propagates_and_seeds_nothing() -> None:
    store = ViewModelStore()

    with pytest.raises(DatastoreUnavailable):
        asyncio.run(hydrate(FailingSource(), store))

    assert store.hydrated is False
    assert store.current.version == 0


def test_last_completed_fetch_wins_regardless_of_fire_order() -> None:
    async def scenario() -> ViewModelStore:
        source = ControlledSource()
        store = _seeded_store()
        scheduler = RefreshScheduler(source, store, devices_interval=60, history_interval=60)

        first = scheduler.trigger(DEVICES)
        second = scheduler.trigger(DEVICES)
        await asyncio.sleep(0)
        assert len(source.pending) == 2
        assert scheduler.in_flight == 2

        source.pending[1].set_result([_device("fired-second")])
        await second
        assert store.current.devices == (_device("fired-second"),)

        source.pending[0].set_result([_device("fired-first")])
        await first
        await scheduler.stop()
        return store

    store = asyncio.run(scenario())

    assert store.current.devices == (_device("fired-first"),)


def test_failed_tick_keeps_previous_slice_and_reports_error() -> None:
    async def scenario() -> tuple:
        store = _seeded_store()
        errors: list = []
        store.subscribe_errors(lambda name, exc: errors.append((name, exc)))
        scheduler = RefreshScheduler(FailingSource(), store, devices_interval=60, history_interval=60)
        before = store.current

        await scheduler.trigger(DEVICES)
        await scheduler.trigger(HISTORY)
        await scheduler.stop()
        return store, before, errors

    store, before, errors = asyncio.run(scenario())

    assert store.current is before
    assert store.current.devices == (_device("seed"),)
    assert set(store.last_errors) == {DEVICES, HISTORY}
    assert [name for name, _ in errors] == [DEVICES, HISTORY]
    assert all(isinstance(exc, DatastoreUnavailable) for _, exc in errors)


def test_stop_cancels_in_flight_fetches_and_blocks_later_ticks() -> None:
    async def scenario() -> tuple:
        source = ControlledSource()
        store = _seeded_store()
        scheduler = RefreshScheduler(source, store, devices_interval=60, history_interval=60)
        scheduler.start()
        task = scheduler.trigger(DEVICES)
        await asyncio.sleep(0)

        await scheduler.stop()
        await scheduler.stop()
        late = scheduler.trigger(DEVICES)
        return store, task, late, source

    store, task, late, source = asyncio.run(scenario())

    assert task.cancelled()
    assert source.pending[0].cancelled()
    assert late is None
    assert store.current.devices == (_device("seed"),)
    assert store.current.version == 1


def test_timers_refresh_each_slice_independently_until_stopped() -> None:
    async def scenario() -> tuple:
        source = CountingSource()
        store = ViewModelStore()
        await hydrate(source, store)
        scheduler = RefreshScheduler(source, store, devices_interval=0.01, history_interval=0.03)
        scheduler.start()
        scheduler.start()
        assert scheduler.running is True

        await asyncio.sleep(0.2)
        await scheduler.stop()
        stopped_at = store.current.version
        await asyncio.sleep(0.05)
        return source, store, scheduler, stopped_at

    source, store, scheduler, stopped_at = asyncio.run(scenario())

    assert scheduler.running is False
    assert source.device_calls > source.history_calls >= 2
    assert store.current.version == stopped_at
    assert store.current.devices[0].value == float(source.device_calls)


def test_start_requires_hydrated_view_model() -> None:
    scheduler = RefreshScheduler(CountingSource(), ViewModelStore())

    with pytest.raises(RuntimeError):
        scheduler.start()


def test_intervals_must_be_positive() -> None:
    with pytest.raises(ValueError):
        RefreshScheduler(CountingSource(), ViewModelStore(), devices_interval=0)
