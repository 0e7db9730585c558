"""
Event-side state: the current time filter, the loaded data and the last
computed snapshot.

All writes happen on the thread that handles events. Loads may finish in
any order; each one carries a token and only the newest token per source
is accepted, so a late response for superseded data is discarded.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Optional, Union

from bike_traffic.aggregate import aggregate_for_filter
from bike_traffic.config import DEFAULT_HALF_WIDTH
from bike_traffic.domain_types import EncodedStation, Marker, StationMetrics, TimeFilter, WindowMode
from bike_traffic.encode import encode
from bike_traffic.stations import StationRegistry
from bike_traffic.trips import TripStore


STATIONS = "stations"
TRIPS = "trips"

Projector = Callable[[float, float], tuple[float, float]]


@dataclass(frozen=True)
class LoadDiagnostic:
    source: str
    message: str


class TrafficState:
    def __init__(self, half_width: int = DEFAULT_HALF_WIDTH,
                 mode: WindowMode = WindowMode.INDEPENDENT):
        self.half_width = int(half_width)
        self.mode = WindowMode(mode)
        self.time_filter = TimeFilter.unfiltered()
        self.registry: Optional[StationRegistry] = None
        self.store: Optional[TripStore] = None
        self.metrics: Optional[dict[str, StationMetrics]] = None
        self.encoded: Optional[dict[str, EncodedStation]] = None
        self.diagnostics: list[LoadDiagnostic] = []
        self.recompute_count = 0
        self._latest_token = {STATIONS: 0, TRIPS: 0}

    # ------------------------------------------------------------------ loads
    def begin_load(self, source: str) -> int:
        if source not in self._latest_token:
            raise ValueError(f"unknown source {source!r}; expected {STATIONS!r} or {TRIPS!r}")
        self._latest_token[source] += 1
        return self._latest_token[source]

    def _is_current(self, source: str, token: int) -> bool:
        return token == self._latest_token[source]

    def complete_stations(self, token: int, registry: StationRegistry) -> bool:
        if not self._is_current(STATIONS, token):
            return False
        self.registry = registry
        self._refresh()
        return True

    def complete_trips(self, token: int, store: TripStore) -> bool:
        if not self._is_current(TRIPS, token):
            return False
        self.store = store
        self._refresh()
        return True

    def fail_load(self, source: str, token: int, error: BaseException) -> bool:
        """Record a failed load and fall back to empty data for that source."""
        if not self._is_current(source, token):
            return False
        self.diagnostics.append(LoadDiagnostic(source, f"{type(error).__name__}: {error}"))
        if source == STATIONS:
            self.registry = StationRegistry.empty()
        else:
            self.store = TripStore.empty()
        self._refresh()
        return True

    @property
    def ready(self) -> bool:
        return self.registry is not None and self.store is not None

    # ----------------------------------------------------------------- filter
    def set_filter(self, value: Union[int, TimeFilter]) -> bool:
        """
        Apply a control change. Returns True when the snapshot was recomputed,
        False when it is deferred until both loads have completed.
        """
        if not isinstance(value, TimeFilter):
            value = TimeFilter.from_control(value)
        self.time_filter = value
        return self._refresh()

    def _refresh(self) -> bool:
        if not self.ready:
            return False
        self.metrics = aggregate_for_filter(
            self.registry, self.store, self.time_filter,
            half_width=self.half_width, mode=self.mode,
        )
        self.encoded = encode(self.metrics, filtered=self.time_filter.is_filtered)
        self.recompute_count += 1
        return True

    # ------------------------------------------------------------- projection
    def markers(self, project: Projector) -> list[Marker]:
        """Screen positions for the last snapshot; never re-aggregates."""
        if self.encoded is None or self.registry is None:
            return []
        out = []
        for station in self.registry:
            enc = self.encoded.get(station.station_id)
            if enc is None:
                continue
            x, y = project(station.longitude, station.latitude)
            out.append(Marker(
                station_id=station.station_id,
                x=x,
                y=y,
                radius=enc.radius,
                ratio_class=enc.ratio_class,
                tooltip=enc.tooltip,
            ))
        return out


def load_sources(
    state: TrafficState,
    load_stations: Callable[[], StationRegistry],
    load_trips: Callable[[], TripStore],
) -> TrafficState:
    """
    Run both loaders concurrently and apply each result on this thread as it
    completes. A loader that raises is recorded as a diagnostic.
    """
    loaders = {STATIONS: load_stations, TRIPS: load_trips}
    tokens = {source: state.begin_load(source) for source in loaders}

    with ThreadPoolExecutor(max_workers=len(loaders)) as pool:
        futures = {pool.submit(fn): source for source, fn in loaders.items()}
        for fut in as_completed(futures):
            source = futures[fut]
            try:
                payload = fut.result()
            except Exception as e:
                state.fail_load(source, tokens[source], e)
                continue
            if source == STATIONS:
                state.complete_stations(tokens[source], payload)
            else:
                state.complete_trips(tokens[source], payload)
    return state
