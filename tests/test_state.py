from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from bike_traffic.domain_types import Station, StationMetrics, TimeFilter, Trip
from bike_traffic.state import STATIONS, TRIPS, TrafficState, load_sources
from bike_traffic.stations import StationRegistry
from bike_traffic.trips import TripStore

DAY = datetime(2024, 3, 1)


def _trip(start: str, end: str, start_min: int, duration: int = 5) -> Trip:
    started = DAY + timedelta(minutes=start_min)
    return Trip(start, end, started, started + timedelta(minutes=duration))


def _registry() -> StationRegistry:
    return StationRegistry([
        Station("A", -71.10, 42.36),
        Station("B", -71.09, 42.35),
        Station("C", -71.08, 42.37),
    ])


def _store() -> TripStore:
    return TripStore.from_trips([
        _trip("A", "B", 500),
        _trip("B", "C", 505),
        _trip("C", "A", 800),
    ])


def _loaded_state() -> TrafficState:
    state = TrafficState()
    state.complete_stations(state.begin_load(STATIONS), _registry())
    state.complete_trips(state.begin_load(TRIPS), _store())
    return state


def test_initial_state_is_unfiltered_and_empty():
    state = TrafficState()
    assert state.time_filter == TimeFilter.unfiltered()
    assert state.metrics is None
    assert not state.ready


def test_filter_change_before_trips_load_is_deferred():
    state = TrafficState()
    stations_token = state.begin_load(STATIONS)
    trips_token = state.begin_load(TRIPS)

    assert state.set_filter(500) is False
    assert state.metrics is None

    state.complete_stations(stations_token, _registry())
    assert state.metrics is None

    state.complete_trips(trips_token, _store())
    assert state.time_filter == TimeFilter.centered(500)
    assert state.metrics["A"] == StationMetrics(departures=1, arrivals=0)
    assert state.recompute_count == 1


def test_each_filter_change_produces_a_fresh_snapshot():
    state = _loaded_state()
    unfiltered = state.metrics

    assert state.set_filter(500) is True
    filtered = state.metrics
    state.set_filter(-1)

    assert filtered is not unfiltered
    assert state.metrics == unfiltered
    assert state.metrics is not unfiltered
    assert state.encoded["B"].tooltip == "2 trips (1 departures, 1 arrivals)"


def test_stale_load_does_not_overwrite_newer_data():
    state = TrafficState()
    state.complete_stations(state.begin_load(STATIONS), _registry())
    old_token = state.begin_load(TRIPS)
    new_token = state.begin_load(TRIPS)
    newer = TripStore.from_trips([_trip("A", "C", 100)])

    assert state.complete_trips(new_token, newer) is True
    assert state.complete_trips(old_token, _store()) is False
    assert state.store is newer
    assert state.metrics["C"].arrivals == 1
    assert state.metrics["B"].arrivals == 0


def test_reprojection_never_reaggregates():
    state = _loaded_state()
    count = state.recompute_count

    first = state.markers(lambda lon, lat: (lon * 10, lat * 10))
    second = state.markers(lambda lon, lat: (0.0, 0.0))

    assert state.recompute_count == count
    assert [m.station_id for m in first] == ["A", "B", "C"]
    assert first[0].x == pytest.approx(-711.0)
    assert all(m.x == 0.0 and m.y == 0.0 for m in second)
    assert [m.radius for m in first] == [m.radius for m in second]


def test_markers_empty_before_any_snapshot():
    assert TrafficState().markers(lambda lon, lat: (lon, lat)) == []


def test_failed_trip_load_yields_zero_metrics():
    state = TrafficState()
    state.complete_stations(state.begin_load(STATIONS), _registry())
    token = state.begin_load(TRIPS)

    assert state.fail_load(TRIPS, token, OSError("connection reset")) is True

    assert len(state.diagnostics) == 1
    assert state.diagnostics[0].source == TRIPS
    assert "connection reset" in state.diagnostics[0].message
    assert all(m == StationMetrics() for m in state.metrics.values())
    assert set(state.metrics) == {"A", "B", "C"}


def test_failed_station_load_yields_empty_snapshot():
    state = TrafficState()
    state.fail_load(STATIONS, state.begin_load(STATIONS), ValueError("bad json"))
    state.complete_trips(state.begin_load(TRIPS), _store())
    assert state.metrics == {}


def test_unknown_source_rejected():
    with pytest.raises(ValueError):
        TrafficState().begin_load("weather")


def test_load_sources_applies_results_and_records_failures():
    state = load_sources(TrafficState(), _registry, _store)
    assert state.ready
    assert state.metrics["A"].total_traffic == 2

    def broken():
        raise RuntimeError("404")

    state = load_sources(TrafficState(), _registry, broken)
    assert [d.source for d in state.diagnostics] == [TRIPS]
    assert len(state.store) == 0


@pytest.mark.parametrize(
    "value, expected",
    [
        (-1, TimeFilter.unfiltered()),
        (-20, TimeFilter.unfiltered()),
        (0, TimeFilter.centered(0)),
        (1439, TimeFilter.centered(1439)),
        (5000, TimeFilter.centered(1439)),
        (500.0, TimeFilter.centered(500)),
    ],
)
def test_control_values_clamp(value, expected):
    assert TimeFilter.from_control(value) == expected


def test_non_integral_control_value_rejected():
    with pytest.raises(ValueError):
        TimeFilter.from_control(12.5)
    with pytest.raises(ValueError):
        TimeFilter.centered(1440)


@pytest.mark.parametrize(
    "minute, label",
    [(None, "any time"), (0, "12:00 AM"), (500, "8:20 AM"), (720, "12:00 PM"), (780, "1:00 PM")],
)
def test_time_filter_label(minute, label):
    assert TimeFilter(minute).label() == label
