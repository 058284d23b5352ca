"""Unit tests for the snapshot reducer and the window aggregator."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from models.records import AggregatedBucket, Reading
from services.aggregator import Aggregator, floor_to_bucket

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def _reading(
    device_id: str,
    value: float,
    at: datetime,
    device_type: str = "SolarPanel",
    unit: str = "kW",
) -> Reading:
    """Helper to build deterministic readings."""

    return Reading(
        device_id=device_id,
        device_type=device_type,
        value=value,
        unit=unit,
        location="60.1699,24.9384",
        time=at,
    )


def test_same_minute_readings_average_and_latest_wins() -> None:
    aggregator = Aggregator()
    readings = [
        _reading("dev1", 2.0, T0 + timedelta(seconds=5)),
        _reading("dev1", 3.0, T0 + timedelta(seconds=40)),
    ]

    history = aggregator.windowed_averages(readings, now=T0 + timedelta(minutes=30))
    snapshot = aggregator.latest_per_device(readings)

    assert history == [AggregatedBucket(bucket=T0, device_type="SolarPanel", avg_value=2.5)]
    assert len(snapshot) == 1
    assert snapshot[0].device_id == "dev1"
    assert snapshot[0].value == 3.0
    assert snapshot[0].time == T0 + timedelta(seconds=40)


def test_latest_per_device_returns_one_row_per_device_with_max_time() -> None:
    aggregator = Aggregator()
    readings = [
        _reading("b", 1.0, T0 + timedelta(minutes=3)),
        _reading("a", 5.0, T0 + timedelta(minutes=1)),
        _reading("b", 2.0, T0 + timedelta(minutes=1)),
        _reading("a", 6.0, T0 + timedelta(minutes=9)),
        _reading("c", 7.0, T0),
        _reading("a", 4.0, T0 + timedelta(minutes=2)),
    ]

    snapshot = aggregator.latest_per_device(readings)

    assert [item.device_id for item in snapshot] == ["a", "b", "c"]
    assert [item.value for item in snapshot] == [6.0, 1.0, 7.0]
    for item in snapshot:
        expected = max(r.time for r in readings if r.device_id == item.device_id)
        assert item.time == expected


def test_latest_per_device_breaks_time_ties_by_highest_value() -> None:
    aggregator = Aggregator()
    readings = [
        _reading("dev", 1.0, T0),
        _reading("dev", 9.0, T0),
        _reading("dev", 4.0, T0),
    ]

    assert aggregator.latest_per_device(readings)[0].value == 9.0
    assert aggregator.latest_per_device(list(reversed(readings)))[0].value == 9.0


def test_latest_per_device_keeps_first_reading_on_full_tie() -> None:
    aggregator = Aggregator()
    readings = [
        _reading("dev", 1.0, T0, unit="kW"),
        _reading("dev", 1.0, T0, unit="W"),
    ]

    assert aggregator.latest_per_device(readings)[0].unit == "kW"


def test_window_excludes_readings_at_or_before_cutoff() -> None:
    aggregator = Aggregator()
    now = T0 + timedelta(hours=1)
    readings = [
        _reading("old", 100.0, T0),
        _reading("edge", 3.0, T0 + timedelta(seconds=1)),
        _reading("new", 5.0, now),
    ]

    history = aggregator.windowed_averages(readings, now=now)

    assert history == [
        AggregatedBucket(bucket=T0, device_type="SolarPanel", avg_value=3.0),
        AggregatedBucket(bucket=now, device_type="SolarPanel", avg_value=5.0),
    ]


def test_history_is_sparse_and_ordered_by_bucket_then_type() -> None:
    aggregator = Aggregator()
    readings = [
        _reading("s1", 1.0, T0 + timedelta(minutes=5), device_type="Sauna"),
        _reading("e1", 11.0, T0 + timedelta(minutes=5, seconds=30), device_type="EVCharger"),
        _reading("p1", 2.0, T0 + timedelta(seconds=10)),
        _reading("e2", 7.0, T0 + timedelta(minutes=5, seconds=59), device_type="EVCharger"),
    ]

    history = aggregator.windowed_averages(readings, now=T0 + timedelta(minutes=10))

    assert [(row.bucket, row.device_type, row.avg_value) for row in history] == [
        (T0, "SolarPanel", 2.0),
        (T0 + timedelta(minutes=5), "EVCharger", 9.0),
        (T0 + timedelta(minutes=5), "Sauna", 1.0),
    ]


def test_every_bucket_mean_matches_its_matching_readings() -> None:
    rng = random.Random(7)
    types = ["SolarPanel", "EVCharger", "Sauna", "HeatPump"]
    now = T0 + timedelta(hours=1)
    readings = [
        _reading(
            f"dev_{index % 25:04d}",
            round(rng.uniform(0.0, 11.0), 3),
            now - timedelta(seconds=rng.randrange(0, 3600)),
            device_type=types[index % 4],
        )
        for index in range(400)
    ]
    aggregator = Aggregator()

    history = aggregator.windowed_averages(readings, now=now)

    expected_keys = {
        (floor_to_bucket(r.time, timedelta(minutes=1)), r.device_type) for r in readings
    }
    assert {(row.bucket, row.device_type) for row in history} == expected_keys
    for row in history:
        values = [
            r.value
            for r in readings
            if r.device_type == row.device_type
            and floor_to_bucket(r.time, timedelta(minutes=1)) == row.bucket
        ]
        assert row.avg_value == pytest.approx(sum(values) / len(values))


def test_reducers_are_idempotent_for_unchanged_input() -> None:
    aggregator = Aggregator()
    readings = [
        _reading("a", 1.0, T0),
        _reading("b", 2.0, T0 + timedelta(minutes=1), device_type="HeatPump"),
        _reading("a", 3.0, T0 + timedelta(minutes=2)),
    ]
    now = T0 + timedelta(minutes=30)

    assert aggregator.latest_per_device(readings) == aggregator.latest_per_device(readings)
    assert aggregator.windowed_averages(readings, now=now) == aggregator.windowed_averages(
        readings, now=now
    )


def test_empty_input_produces_no_rows() -> None:
    aggregator = Aggregator()

    assert aggregator.latest_per_device([]) == []
    assert aggregator.windowed_averages([], now=T0) == []


@pytest.mark.parametrize(
    "window, bucket",
    [(timedelta(0), timedelta(minutes=1)), (timedelta(hours=1), timedelta(seconds=-1))],
)
def test_non_positive_window_or_bucket_is_rejected(window, bucket) -> None:
    with pytest.raises(ValueError):
        Aggregator().windowed_averages([], now=T0, window=window, bucket=bucket)


def test_buckets_align_to_wall_clock_minutes() -> None:
    assert floor_to_bucket(T0 + timedelta(seconds=59, microseconds=999), timedelta(minutes=1)) == T0
    assert floor_to_bucket(T0 + timedelta(minutes=7), timedelta(minutes=5)) == T0 + timedelta(
        minutes=5
    )
    assert floor_to_bucket(datetime(2024, 1, 1, 10, 0, 30), timedelta(minutes=1)) == T0


def test_naive_and_offset_times_are_compared_in_utc() -> None:
    aggregator = Aggregator()
    helsinki = timezone(timedelta(hours=2))
    readings = [
        _reading("dev1", 1.0, datetime(2024, 1, 1, 10, 0, 10)),
        _reading("dev1", 4.0, datetime(2024, 1, 1, 12, 0, 40, tzinfo=helsinki)),
        _reading("dev2", 2.0, datetime(2023, 12, 31, 10, 0)),
    ]

    snapshot = aggregator.latest_per_device(readings)
    history = aggregator.windowed_averages(readings, now=datetime(2024, 1, 1, 10, 1))

    assert [(item.device_id, item.value, item.time) for item in snapshot] == [
        ("dev1", 4.0, T0 + timedelta(seconds=40)),
        ("dev2", 2.0, datetime(2023, 12, 31, 10, 0, tzinfo=timezone.utc)),
    ]
    assert history == [AggregatedBucket(bucket=T0, device_type="SolarPanel", avg_value=2.5)]
