# src/bike_traffic/config.py
from __future__ import annotations
from pathlib import Path
import os


MINUTES_PER_DAY = 1440
DEFAULT_HALF_WIDTH = 60
UNFILTERED_VALUE = -1

# sqrt-scale output ranges (px); filtered windows carry far fewer trips
RADIUS_RANGE_UNFILTERED = (0.0, 25.0)
RADIUS_RANGE_FILTERED = (3.0, 50.0)

DEPARTURE_COLOR = "#4682b4"  # steelblue
ARRIVAL_COLOR = "#ff8c00"  # darkorange
MARKER_OPACITY = 0.8

# (lon, lat)
MAP_CENTER = (-71.09415, 42.36027)
MAP_ZOOM = 12

STATIONS_URL = "https://dsc106.com/labs/lab07/data/bluebikes-stations.json"
TRIPS_URL = "https://dsc106.com/labs/lab07/data/bluebikes-traffic-2024-03.csv"

BIKE_LANE_LAYERS = [
    {
        "id": "bike-lanes",
        "url": "https://bostonopendata-boston.opendata.arcgis.com/datasets/boston::existing-bike-network-2022.geojson",
        "color": "green",
        "width": 3,
        "opacity": 0.4,
    },
    {
        "id": "cambridge-bike-lanes",
        "url": "https://raw.githubusercontent.com/cambridgegis/cambridgegis_data/main/Recreation/Bike_Facilities/RECREATION_BikeFacilities.geojson",
        "color": "green",
        "width": 3,
        "opacity": 0.5,
    },
]


def _repo_root() -> Path:
    # .../bike_traffic/src/bike_traffic/config.py → repo root
    return Path(__file__).resolve().parents[2]


def get_data_dir() -> Path:
    env = os.getenv("BIKE_TRAFFIC_DATA_DIR")
    if env:
        return Path(env).expanduser().resolve()

    repo_data = _repo_root() / "data"
    if repo_data.exists():
        return repo_data.resolve()

    return (Path.home() / "bike_traffic-data").resolve()


def cache_parquet_dir(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / "cache_parquet"


def raw_trips_dir(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / "trips_raw"


def stations_path(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / "stations.json"
