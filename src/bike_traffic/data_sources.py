"""Where station, trip and bike-lane data come from: local data dir first, then remote."""

from __future__ import annotations

from pathlib import Path
from typing import Union

import requests

from bike_traffic.config import BIKE_LANE_LAYERS, STATIONS_URL, TRIPS_URL, cache_parquet_dir, stations_path


def has_parquet_cache(cache_dir: Path) -> bool:
    return cache_dir.exists() and any(cache_dir.glob("*.parquet"))


def has_raw_trips(raw_dir: Path) -> bool:
    return raw_dir.exists() and (any(raw_dir.glob("*.csv")) or any(raw_dir.glob("*.csv.gz")))


def station_source(data_dir: Path | None = None) -> Union[Path, str]:
    local = stations_path(data_dir)
    return local if local.exists() else STATIONS_URL


def trip_source(data_dir: Path | None = None) -> Union[Path, str]:
    cache = cache_parquet_dir(data_dir)
    return cache if has_parquet_cache(cache) else TRIPS_URL


def fetch_geojson(url: str, timeout: float = 30) -> dict:
    headers = {"User-Agent": "bike-traffic/1.0"}
    r = requests.get(url, headers=headers, timeout=timeout)
    r.raise_for_status()
    return r.json()


def load_bike_lanes(layers: list[dict] | None = None) -> tuple[list[dict], list[str]]:
    """
    Fetch the bike-lane overlays. Returns (loaded layers, error messages);
    a layer that fails to load is skipped, the map still renders without it.
    """
    loaded, errors = [], []
    for layer in layers if layers is not None else BIKE_LANE_LAYERS:
        try:
            geojson = fetch_geojson(layer["url"])
        except (requests.RequestException, ValueError) as e:
            errors.append(f"{layer['id']}: {e}")
            continue
        loaded.append({**layer, "geojson": geojson})
    return loaded, errors
