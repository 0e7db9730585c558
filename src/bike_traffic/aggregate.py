from __future__ import annotations

from collections import Counter
from typing import Iterable, Mapping

import pandas as pd

from bike_traffic.config import DEFAULT_HALF_WIDTH
from bike_traffic.domain_types import Station, StationMetrics, TimeFilter, Trip, WindowMode
from bike_traffic.trips import TripStore
from bike_traffic.window import select_window


METRIC_COLS = ["station_id", "name", "longitude", "latitude",
               "departures", "arrivals", "total_traffic"]


def aggregate(
    stations: Iterable[Station],
    departure_trips: Iterable[Trip],
    arrival_trips: Iterable[Trip],
) -> dict[str, StationMetrics]:
    """
    Per-station departure/arrival counts.

    Every station gets an entry, zero when no trip touches it. Trips naming
    stations outside the registry are ignored. The result is a new dict on
    every call; stations are only read.
    """
    departures = Counter(t.start_station_id for t in departure_trips)
    arrivals = Counter(t.end_station_id for t in arrival_trips)
    return {
        s.station_id: StationMetrics(
            departures=departures.get(s.station_id, 0),
            arrivals=arrivals.get(s.station_id, 0),
        )
        for s in stations
    }


def _union(first: list[Trip], second: list[Trip]) -> list[Trip]:
    # identity, not equality: two identical rides are still two trips
    seen = {id(t) for t in first}
    return first + [t for t in second if id(t) not in seen]


def aggregate_for_filter(
    stations: Iterable[Station],
    store: TripStore,
    time_filter: TimeFilter,
    half_width: int = DEFAULT_HALF_WIDTH,
    mode: WindowMode = WindowMode.INDEPENDENT,
) -> dict[str, StationMetrics]:
    if not time_filter.is_filtered:
        return aggregate(stations, store.trips, store.trips)

    index = store.index
    departing = select_window(index.departures_by_minute, time_filter.minute, half_width)
    arriving = select_window(index.arrivals_by_minute, time_filter.minute, half_width)

    if mode == WindowMode.EITHER_ENDPOINT:
        both = _union(departing, arriving)
        return aggregate(stations, both, both)
    return aggregate(stations, departing, arriving)


def metrics_frame(stations: Iterable[Station], metrics: Mapping[str, StationMetrics]) -> pd.DataFrame:
    """Join a metrics snapshot back to station records, busiest first."""
    rows = []
    for s in stations:
        m = metrics.get(s.station_id, StationMetrics())
        rows.append({
            "station_id": s.station_id,
            "name": s.name,
            "longitude": s.longitude,
            "latitude": s.latitude,
            "departures": m.departures,
            "arrivals": m.arrivals,
            "total_traffic": m.total_traffic,
        })
    df = pd.DataFrame(rows, columns=METRIC_COLS)
    return df.sort_values(["total_traffic", "station_id"], ascending=[False, True], kind="stable").reset_index(drop=True)
