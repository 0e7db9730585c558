from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import pandas as pd

from bike_traffic.config import MINUTES_PER_DAY
from bike_traffic.domain_types import Trip
from bike_traffic.stations import clean_ids, pick_column


TRIP_COLS = ["trip_id", "start_station_id", "end_station_id", "started_at", "ended_at"]

Buckets = tuple[tuple[Trip, ...], ...]


def minutes_since_midnight(ts: datetime) -> int:
    """Minute of the day (0..1439), truncating seconds."""
    return ts.hour * 60 + ts.minute


def parse_timestamp(value) -> Optional[datetime]:
    """datetime passthrough, strings parsed by pandas; None when unusable."""
    if value is None:
        return None
    if isinstance(value, str):
        value = pd.to_datetime(value.strip(), errors="coerce")
    elif not isinstance(value, datetime):
        return None
    if pd.isna(value):
        return None
    return value


def _wall_time(ts: Optional[datetime]):
    if ts is None:
        return pd.NaT
    return ts.replace(tzinfo=None) if ts.tzinfo is not None else ts


def parse_timestamp_column(values: pd.Series) -> pd.Series:
    """
    Parse a timestamp column, each value on its own format.

    Offset-aware stamps keep their local wall time (the offset is dropped),
    so a column whose offsets change across a DST switch still parses.
    Values that fail to parse become NaT.
    """
    try:
        parsed = pd.to_datetime(values, errors="coerce", format="mixed")
    except (ValueError, TypeError):
        # mixed UTC offsets; pandas refuses to build one column from them
        parsed = None

    if parsed is None or not pd.api.types.is_datetime64_any_dtype(parsed):
        parsed = values.map(lambda v: _wall_time(parse_timestamp(v)))
        return pd.to_datetime(parsed, errors="coerce")

    if parsed.dt.tz is not None:
        parsed = parsed.dt.tz_localize(None)
    return parsed


@dataclass(frozen=True)
class LoadReport:
    loaded: int = 0
    dropped: int = 0


@dataclass(frozen=True)
class MinuteIndex:
    """
    Trips bucketed by minute of day.

    departures_by_minute[m] holds the trips that started at minute m,
    arrivals_by_minute[m] the trips that ended at minute m. Both sequences
    always have MINUTES_PER_DAY slots.
    """

    departures_by_minute: Buckets
    arrivals_by_minute: Buckets
    dropped: int = 0

    def __post_init__(self):
        for name in ("departures_by_minute", "arrivals_by_minute"):
            if len(getattr(self, name)) != MINUTES_PER_DAY:
                raise ValueError(f"{name} must have {MINUTES_PER_DAY} buckets")

    def bucket_sizes(self) -> pd.DataFrame:
        return pd.DataFrame({
            "minute": range(MINUTES_PER_DAY),
            "departures": [len(b) for b in self.departures_by_minute],
            "arrivals": [len(b) for b in self.arrivals_by_minute],
        })


def build_index(trips: Iterable[Trip]) -> MinuteIndex:
    """Bucket every trip once by start minute and once by end minute."""
    departures: list[list[Trip]] = [[] for _ in range(MINUTES_PER_DAY)]
    arrivals: list[list[Trip]] = [[] for _ in range(MINUTES_PER_DAY)]
    dropped = 0

    for trip in trips:
        start = parse_timestamp(trip.started_at)
        end = parse_timestamp(trip.ended_at)
        if start is None or end is None:
            dropped += 1
            continue
        departures[minutes_since_midnight(start)].append(trip)
        arrivals[minutes_since_midnight(end)].append(trip)

    return MinuteIndex(
        departures_by_minute=tuple(tuple(b) for b in departures),
        arrivals_by_minute=tuple(tuple(b) for b in arrivals),
        dropped=dropped,
    )


class TripStore:
    """
    Loaded trips plus their minute index.

    Only trips with parseable timestamps are kept, so the full trip list and
    the index always describe the same set. A store is never mutated; a
    reload builds a new one.
    """

    def __init__(self, trips: Sequence[Trip], index: MinuteIndex, report: LoadReport):
        self._trips = tuple(trips)
        self.index = index
        self.report = report

    @classmethod
    def empty(cls) -> "TripStore":
        return cls.from_trips(())

    @classmethod
    def from_trips(cls, trips: Iterable[Trip], dropped: int = 0) -> "TripStore":
        """dropped: rows already discarded upstream, added to the report."""
        valid = []
        for trip in trips:
            start = parse_timestamp(trip.started_at)
            end = parse_timestamp(trip.ended_at)
            if start is None or end is None:
                dropped += 1
                continue
            if start is not trip.started_at or end is not trip.ended_at:
                trip = replace(trip, started_at=start, ended_at=end)
            valid.append(trip)
        index = build_index(valid)
        return cls(valid, index, LoadReport(loaded=len(valid), dropped=dropped))

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "TripStore":
        t = normalize_trip_frame(df)
        trips = (
            Trip(
                start_station_id=row.start_station_id,
                end_station_id=row.end_station_id,
                started_at=None if pd.isna(row.started_at) else row.started_at,
                ended_at=None if pd.isna(row.ended_at) else row.ended_at,
                trip_id=None if pd.isna(row.trip_id) else str(row.trip_id),
            )
            for row in t.itertuples(index=False)
        )
        # rows without station ids never reach Trip; count them too
        return cls.from_trips(trips, dropped=int(t.attrs.get("missing_ids", 0)))

    @property
    def trips(self) -> tuple[Trip, ...]:
        return self._trips

    def __len__(self) -> int:
        return len(self._trips)


def normalize_trip_frame(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename a raw trip table to TRIP_COLS and coerce types.

    Timestamps that fail to parse become NaT (the store drops those trips).
    Rows without a start or end station id are removed; their count is kept
    in ``out.attrs["missing_ids"]``.
    """
    cols = [c.strip() for c in df.columns]
    df = df.set_axis(cols, axis=1)

    col_start = pick_column(cols, "start_station_id", "startStationId", "start station id", "from_station_id")
    col_end = pick_column(cols, "end_station_id", "endStationId", "end station id", "to_station_id")
    col_started = pick_column(cols, "started_at", "startedAt", "starttime", "start_time")
    col_ended = pick_column(cols, "ended_at", "endedAt", "stoptime", "end_time")
    col_id = pick_column(cols, "ride_id", "trip_id", "rideId", "tripId", "id")

    required = {
        "start_station_id": col_start,
        "end_station_id": col_end,
        "started_at": col_started,
        "ended_at": col_ended,
    }
    missing = [k for k, v in required.items() if v is None]
    if missing:
        raise KeyError(
            f"Trip data missing required columns: {missing}. Found: {cols}")

    out = pd.DataFrame({k: df[v] for k, v in required.items()})
    out["trip_id"] = df[col_id] if col_id else pd.NA
    out = out[TRIP_COLS]

    n_before = len(out)
    out = out.dropna(subset=["start_station_id", "end_station_id"]).copy()
    out["start_station_id"] = clean_ids(out["start_station_id"])
    out["end_station_id"] = clean_ids(out["end_station_id"])

    for c in ["started_at", "ended_at"]:
        out[c] = parse_timestamp_column(out[c])

    out = out.reset_index(drop=True)
    out.attrs["missing_ids"] = n_before - len(out)
    return out


def read_trips(source: Union[str, Path]) -> TripStore:
    """Load trips from a CSV or parquet file (local path or URL), or a parquet cache dir."""
    path = Path(str(source))
    if not str(source).startswith(("http://", "https://")) and path.is_dir():
        parquet_files = sorted(path.glob("*.parquet"))
        if not parquet_files:
            raise FileNotFoundError(f"No parquet files in {path}.")
        df = pd.concat([pd.read_parquet(p) for p in parquet_files], ignore_index=True)
    elif str(source).endswith(".parquet"):
        df = pd.read_parquet(source)
    else:
        df = pd.read_csv(source, low_memory=False)
    return TripStore.from_frame(df)
