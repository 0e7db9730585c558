from __future__ import annotations

from datetime import datetime, timedelta

import pandas as pd
import pytest

from bike_traffic.config import MINUTES_PER_DAY
from bike_traffic.domain_types import Trip
from bike_traffic.trips import (
    MinuteIndex,
    TripStore,
    build_index,
    minutes_since_midnight,
    parse_timestamp,
)

DAY = datetime(2024, 3, 1)


def _trip(start: str, end: str, start_min: int, duration: int = 10) -> Trip:
    started = DAY + timedelta(minutes=start_min)
    return Trip(start, end, started, started + timedelta(minutes=duration))


def test_minutes_since_midnight_truncates_seconds():
    assert minutes_since_midnight(datetime(2024, 3, 1, 0, 0, 59)) == 0
    assert minutes_since_midnight(datetime(2024, 3, 1, 8, 20, 30)) == 500
    assert minutes_since_midnight(pd.Timestamp("2024-03-01 23:59:59")) == 1439


def test_parse_timestamp_handles_strings_and_garbage():
    assert parse_timestamp("2024-03-01 08:20:00") == datetime(2024, 3, 1, 8, 20)
    assert parse_timestamp("not a date") is None
    assert parse_timestamp("") is None
    assert parse_timestamp(None) is None
    assert parse_timestamp(pd.NaT) is None
    assert parse_timestamp(12345) is None


def test_every_trip_lands_in_exactly_one_slot_per_side():
    trips = [_trip("A", "B", m) for m in (0, 1, 500, 500, 1439)]
    index = build_index(trips)

    assert len(index.departures_by_minute) == MINUTES_PER_DAY
    assert len(index.arrivals_by_minute) == MINUTES_PER_DAY
    assert sum(len(b) for b in index.departures_by_minute) == len(trips)
    assert sum(len(b) for b in index.arrivals_by_minute) == len(trips)
    assert len(index.departures_by_minute[500]) == 2
    # 23:59 + 10 minutes ends at 00:09 on the next day
    assert trips[-1] in index.arrivals_by_minute[9]
    assert index.dropped == 0


def test_unparseable_timestamps_are_dropped_and_counted():
    good = _trip("A", "B", 60)
    bad_start = Trip("A", "B", "garbage", DAY)
    bad_end = Trip("A", "B", DAY, None)
    index = build_index([good, bad_start, bad_end])

    assert index.dropped == 2
    assert sum(len(b) for b in index.departures_by_minute) == 1
    assert index.departures_by_minute[60] == (good,)


def test_string_timestamps_are_indexed():
    trip = Trip("A", "B", "2024-03-01 08:20:00", "2024-03-01 08:35:00")
    index = build_index([trip])
    assert index.departures_by_minute[500] == (trip,)
    assert index.arrivals_by_minute[515] == (trip,)


def test_trip_store_keeps_only_valid_trips():
    store = TripStore.from_trips([
        _trip("A", "B", 10),
        Trip("B", "C", "2024-03-01 09:00:00", "2024-03-01 09:10:00"),
        Trip("C", "A", "nope", "2024-03-01 09:10:00"),
    ])

    assert len(store) == 2
    assert store.report.loaded == 2
    assert store.report.dropped == 1
    assert store.index.dropped == 0
    assert all(isinstance(t.started_at, datetime) for t in store.trips)
    assert len(store.index.departures_by_minute[540]) == 1


def test_empty_store_has_full_empty_index():
    store = TripStore.empty()
    assert len(store) == 0
    assert all(len(b) == 0 for b in store.index.departures_by_minute)
    assert store.index.bucket_sizes()["departures"].sum() == 0


def test_minute_index_rejects_wrong_bucket_count():
    with pytest.raises(ValueError):
        MinuteIndex(departures_by_minute=((),) * 10, arrivals_by_minute=((),) * MINUTES_PER_DAY)
