from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Iterator

import pandas as pd
import requests

from bike_traffic.domain_types import Station


def _is_url(source) -> bool:
    return str(source).startswith(("http://", "https://"))


def pick_column(columns: Iterable[str], *candidates: str):
    """Return the first column matching a candidate, ignoring case, spaces and underscores."""
    lower_map = {c.lower().replace(" ", "").replace("_", ""): c for c in columns}
    for cand in candidates:
        key = cand.lower().replace(" ", "").replace("_", "")
        if key in lower_map:
            return lower_map[key]
    return None


def clean_ids(ids: pd.Series) -> pd.Series:
    """Station ids as stripped strings; float ids like 123.0 become "123"."""
    if pd.api.types.is_float_dtype(ids):
        whole = ids.dropna()
        if (whole == whole.round()).all():
            ids = ids.astype("Int64")
    return ids.astype(str).str.strip()


class StationRegistry:
    """Immutable, ordered set of stations keyed by id."""

    def __init__(self, stations: Iterable[Station] = ()):
        by_id: dict[str, Station] = {}
        for station in stations:
            # de-dup by station id (keep last)
            by_id.pop(station.station_id, None)
            by_id[station.station_id] = station
        self._by_id = by_id
        self._stations = tuple(by_id.values())

    @classmethod
    def empty(cls) -> "StationRegistry":
        return cls(())

    def __len__(self) -> int:
        return len(self._stations)

    def __iter__(self) -> Iterator[Station]:
        return iter(self._stations)

    def __contains__(self, station_id: object) -> bool:
        return station_id in self._by_id

    def get(self, station_id: str):
        return self._by_id.get(station_id)

    def ids(self) -> list[str]:
        return [s.station_id for s in self._stations]

    @property
    def stations(self) -> tuple[Station, ...]:
        return self._stations


def normalize_station_records(payload) -> list[Station]:
    """
    Turn a raw station payload into Station records.

    Accepts a plain list of records or the GBFS-like nested form
    {"data": {"stations": [...]}}. Field names vary between feeds
    (short_name/Number, Long/lon/Lng, Lat/lat); records missing an id or
    usable coordinates are dropped.
    """
    if isinstance(payload, dict):
        data = payload.get("data")
        records = data.get("stations", []) if isinstance(data, dict) else payload.get("stations", [])
    else:
        records = payload
    df = pd.DataFrame(list(records or []))
    if df.empty:
        return []

    col_id = pick_column(df.columns, "short_name", "Number", "station_id", "id")
    col_lon = pick_column(df.columns, "Long", "lon", "Lng", "Longitude")
    col_lat = pick_column(df.columns, "Lat", "Latitude")
    col_name = pick_column(df.columns, "name", "NAME", "station_name")

    missing = [label for label, col in [("id", col_id), ("longitude", col_lon), ("latitude", col_lat)] if col is None]
    if missing:
        raise KeyError(
            f"Station records missing required fields: {missing}. Found: {list(df.columns)}")

    out = pd.DataFrame({
        "station_id": df[col_id],
        "longitude": pd.to_numeric(df[col_lon], errors="coerce"),
        "latitude": pd.to_numeric(df[col_lat], errors="coerce"),
        "name": df[col_name] if col_name else None,
    })
    out = out.dropna(subset=["station_id", "longitude", "latitude"]).copy()
    out["station_id"] = clean_ids(out["station_id"])
    out = out[out["station_id"] != ""]

    return [
        Station(
            station_id=row.station_id,
            longitude=float(row.longitude),
            latitude=float(row.latitude),
            name=None if pd.isna(row.name) else str(row.name).strip(),
        )
        for row in out.itertuples(index=False)
    ]


def read_stations(source: str | Path, timeout: float = 30) -> StationRegistry:
    """Load stations from a local JSON file or an http(s) URL."""
    if _is_url(source):
        headers = {"User-Agent": "bike-traffic/1.0"}
        r = requests.get(str(source), headers=headers, timeout=timeout)
        r.raise_for_status()
        payload = r.json()
    else:
        with open(source, "r", encoding="utf-8") as f:
            payload = json.load(f)
    return StationRegistry(normalize_station_records(payload))
