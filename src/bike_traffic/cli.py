from __future__ import annotations

import argparse
import os
import subprocess
from pathlib import Path
import importlib.util

import pandas as pd

from bike_traffic.aggregate import metrics_frame
from bike_traffic.config import (
    DEFAULT_HALF_WIDTH,
    cache_parquet_dir,
    get_data_dir,
    raw_trips_dir,
    stations_path,
)
from bike_traffic.data_sources import has_parquet_cache, has_raw_trips, station_source, trip_source
from bike_traffic.domain_types import TimeFilter, WindowMode
from bike_traffic.preprocess_trips import preprocess_dir
from bike_traffic.state import TrafficState, load_sources
from bike_traffic.stations import read_stations
from bike_traffic.trips import read_trips


def run_streamlit_app() -> None:
    # Locate the installed module file path for bike_traffic.app
    spec = importlib.util.find_spec("bike_traffic.app")
    if spec is None or spec.origin is None:
        raise RuntimeError(
            "Could not locate module bike_traffic.app (is the package installed?)")

    app_path = Path(spec.origin).resolve()

    # streamlit expects a filepath, not `-m module`
    subprocess.run(["streamlit", "run", str(app_path)], check=True)


def parse_time_of_day(value: str) -> int:
    """'HH:MM' -> minute of day; 'any' or '-1' -> -1."""
    value = value.strip().lower()
    if value in ("any", "-1"):
        return -1
    try:
        hh, mm = value.split(":")
        hour, minute = int(hh), int(mm)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"expected HH:MM or 'any', got {value!r}") from None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise argparse.ArgumentTypeError(f"time out of range: {value!r}")
    return hour * 60 + minute


def run_summary(data_dir: Path, minute: int, half_width: int, mode: str, top: int) -> pd.DataFrame:
    state = TrafficState(half_width=half_width, mode=WindowMode(mode))
    stations_src = station_source(data_dir)
    trips_src = trip_source(data_dir)
    print(f"[INFO] stations: {stations_src}")
    print(f"[INFO] trips:    {trips_src}")

    load_sources(
        state,
        lambda: read_stations(stations_src),
        lambda: read_trips(trips_src),
    )
    for diag in state.diagnostics:
        print(f"[WARN] {diag.source} failed to load: {diag.message}")
    if state.store is not None and state.store.report.dropped:
        print(f"[WARN] dropped {state.store.report.dropped:,} trips with unusable timestamps or station ids")

    state.set_filter(minute)
    table = metrics_frame(state.registry, state.metrics)
    print(f"[OK] {len(state.store):,} trips, {len(state.registry):,} stations, filter: {state.time_filter.label()}")
    if len(state.store):
        for line in peak_minute_lines(state.store.index.bucket_sizes()):
            print(f"[INFO] {line}")
    return table.head(top)


def peak_minute_lines(sizes: pd.DataFrame) -> list[str]:
    """Busiest departure and arrival minute of the day from MinuteIndex.bucket_sizes()."""
    lines = []
    for col in ["departures", "arrivals"]:
        row = sizes.loc[sizes[col].idxmax()]
        label = TimeFilter.centered(int(row["minute"])).label()
        lines.append(f"peak {col}: {label} ({int(row[col]):,} trips)")
    return lines


def main():
    p = argparse.ArgumentParser(prog="bike_traffic")
    sub = p.add_subparsers(dest="cmd", required=True)

    # --- app ---
    app = sub.add_parser(
        "app", help="Run the Streamlit map")
    app.add_argument(
        "--data-dir",
        default=None,
        help="Directory containing stations.json and cache_parquet/. "
             "If omitted, uses BIKE_TRAFFIC_DATA_DIR or repo-local ./data or ~/bike_traffic-data. "
             "Missing files fall back to the public datasets.",
    )

    # --- preprocess ---
    prep = sub.add_parser(
        "preprocess", help="Build cache_parquet/ from raw trip CSVs")
    prep.add_argument("--data-dir", default=None)
    prep.add_argument(
        "--pattern",
        default="*.csv*",
        help="Glob pattern for raw trip files inside trips_raw/ (default: %(default)s)",
    )
    prep.add_argument("--force", action="store_true",
                      help="Rebuild cache_parquet/ even if it exists.")

    # --- optional: doctor ---
    doc = sub.add_parser(
        "doctor", help="Check that data folders exist and look sane")
    doc.add_argument("--data-dir", default=None)

    # --- summary ---
    summ = sub.add_parser(
        "summary", help="Print the busiest stations for a time of day")
    summ.add_argument("--data-dir", default=None)
    summ.add_argument("--time", type=parse_time_of_day, default=-1,
                      help="Centre of the window as HH:MM, or 'any' (default)")
    summ.add_argument("--half-width", type=int, default=DEFAULT_HALF_WIDTH,
                      help="Minutes on each side of --time (default: %(default)s)")
    summ.add_argument("--mode", choices=[m.value for m in WindowMode],
                      default=WindowMode.INDEPENDENT.value,
                      help="How departures/arrivals are windowed (default: %(default)s)")
    summ.add_argument("--top", type=int, default=20)

    args = p.parse_args()

    # Resolve data dir, and export it so app.py uses same directory.
    if args.data_dir:
        data_dir = Path(args.data_dir).expanduser().resolve()
        os.environ["BIKE_TRAFFIC_DATA_DIR"] = str(data_dir)
    else:
        data_dir = get_data_dir()
        os.environ["BIKE_TRAFFIC_DATA_DIR"] = str(data_dir)

    stations_file = stations_path(data_dir)
    raw_dir = raw_trips_dir(data_dir)
    cache_dir = cache_parquet_dir(data_dir)

    if args.cmd == "doctor":
        print(f"[INFO] DATA_DIR = {data_dir}")
        print(
            f"[INFO] stations.json:  {'OK' if stations_file.exists() else 'MISSING (remote fallback)'} ({stations_file})")
        print(
            f"[INFO] trips_raw/:     {'OK' if has_raw_trips(raw_dir) else 'MISSING/EMPTY'} ({raw_dir})")
        print(
            f"[INFO] cache_parquet/: {'OK' if has_parquet_cache(cache_dir) else 'MISSING/EMPTY (remote fallback)'} ({cache_dir})")
        if has_raw_trips(raw_dir) and not has_parquet_cache(cache_dir):
            print("\n[HINT] Run: bike_traffic preprocess --data-dir", data_dir)
        return

    if args.cmd == "preprocess":
        cache_dir.mkdir(parents=True, exist_ok=True)

        if has_parquet_cache(cache_dir) and not args.force:
            print(
                f"[OK] cache_parquet already exists with parquet files: {cache_dir}")
            print("[HINT] Use --force to rebuild.")
            return

        if not has_raw_trips(raw_dir):
            raise FileNotFoundError(
                f"raw trips missing/empty at: {raw_dir}\n"
                "Expected .csv or .csv.gz trip exports inside trips_raw/."
            )

        print(f"[INFO] Preprocessing raw trip files from: {raw_dir}")
        print(f"[INFO] Writing parquet cache to: {cache_dir}")
        totals = preprocess_dir(raw_dir=raw_dir, out_parquet=cache_dir,
                                pattern=args.pattern)
        print(f"[OK] Preprocess complete: kept {totals['kept']:,}, dropped {totals['dropped']:,}.")
        return

    if args.cmd == "summary":
        table = run_summary(data_dir, args.time, args.half_width, args.mode, args.top)
        print(table.to_string(index=False))
        return

    if args.cmd == "app":
        run_streamlit_app()
        return


if __name__ == "__main__":
    main()
