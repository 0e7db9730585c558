from __future__ import annotations

import gzip
from pathlib import Path
from typing import Iterable, Union, IO
from tqdm import tqdm

import pandas as pd

from bike_traffic.trips import normalize_trip_frame


def _open_maybe_gzip(path: Path) -> IO[str]:
    """Open .gz as text, else open regular text."""
    if path.suffix == ".gz":
        return gzip.open(path, "rt", encoding="utf-8", errors="replace")
    return open(path, "rt", encoding="utf-8", errors="replace")


def iter_trip_chunks(path: Union[str, Path], chunksize: int = 250_000) -> Iterable[tuple[pd.DataFrame, int]]:
    """Yield (normalized chunk, rows dropped) pairs from one raw trip file."""
    path = Path(path)

    with _open_maybe_gzip(path) as f:
        reader = pd.read_csv(f, chunksize=chunksize, low_memory=False)

        for chunk in reader:
            raw_rows = len(chunk)
            chunk = normalize_trip_frame(chunk)

            # timestamps that did not parse can never be indexed
            chunk = chunk[chunk["started_at"].notna() & chunk["ended_at"].notna()]

            yield chunk, raw_rows - len(chunk)


def _stem(name: str) -> str:
    for suffix in (".csv.gz", ".txt.gz", ".csv", ".txt"):
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return Path(name).stem


def preprocess_dir(
    raw_dir: Union[str, Path],
    out_parquet: Union[str, Path],
    *,
    pattern: str = "*.csv*",
    chunksize: int = 250_000,
) -> dict[str, int]:
    """
    Convert raw trip exports -> per-file parquet cache with normalized columns.

    raw_dir:
      directory containing raw trip CSVs (.csv or .csv.gz)
    out_parquet:
      output directory to write .parquet files
    pattern:
      glob pattern inside raw_dir

    Returns {"kept": ..., "dropped": ...} over all files.
    """
    raw_dir = Path(raw_dir)
    out_parquet = Path(out_parquet)
    out_parquet.mkdir(parents=True, exist_ok=True)

    files = sorted(raw_dir.glob(pattern))
    if not files:
        raise FileNotFoundError(
            f"No files matched pattern {pattern!r} in {raw_dir}")

    totals = {"kept": 0, "dropped": 0}
    for fp in tqdm(files, desc="Preprocessing trip files", unit="file"):
        out_fp = out_parquet / f"{_stem(fp.name)}.parquet"

        parts = []
        dropped = 0
        for chunk, n_dropped in iter_trip_chunks(fp, chunksize=chunksize):
            dropped += n_dropped
            if len(chunk):
                parts.append(chunk)

        totals["dropped"] += dropped
        if parts:
            df = pd.concat(parts, ignore_index=True)
            df.to_parquet(out_fp, index=False)
            totals["kept"] += len(df)
            print(f"[OK] {fp.name}: kept {len(df):,} trips, dropped {dropped:,} -> {out_fp.name}")
        else:
            print(f"[WARN] {fp.name}: kept 0 trips (dropped {dropped:,})")

    return totals
