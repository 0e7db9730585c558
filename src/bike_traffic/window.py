"""Circular time-of-day windows over a minute index."""

from __future__ import annotations

from itertools import chain
from typing import Callable, Iterable, Sequence

from bike_traffic.config import DEFAULT_HALF_WIDTH, MINUTES_PER_DAY
from bike_traffic.domain_types import Trip
from bike_traffic.trips import minutes_since_midnight, parse_timestamp


def window_bounds(center: int, half_width: int = DEFAULT_HALF_WIDTH) -> tuple[int, int]:
    """Bucket range [lo, hi) around center; lo > hi when it wraps past midnight."""
    lo = (center - half_width + MINUTES_PER_DAY) % MINUTES_PER_DAY
    hi = (center + half_width) % MINUTES_PER_DAY
    return lo, hi


def covers_full_day(half_width: int) -> bool:
    return 2 * half_width >= MINUTES_PER_DAY


def select_window(
    buckets: Sequence[Sequence[Trip]],
    center: int,
    half_width: int = DEFAULT_HALF_WIDTH,
) -> list[Trip]:
    """
    Concatenate the minute buckets inside the circular window around center.

    buckets is one side of a MinuteIndex (departures_by_minute or
    arrivals_by_minute); center is assumed already validated to 0..1439.
    """
    if covers_full_day(half_width):
        # lo == hi here, which would otherwise read as an empty range
        return list(chain.from_iterable(buckets))

    lo, hi = window_bounds(center, half_width)
    if lo <= hi:
        return list(chain.from_iterable(buckets[lo:hi]))
    # straddles midnight: [lo, 1440) then [0, hi)
    return list(chain.from_iterable(buckets[lo:])) + list(chain.from_iterable(buckets[:hi]))


def in_window(minute: int, center: int, half_width: int = DEFAULT_HALF_WIDTH) -> bool:
    """Same half-open circular predicate as select_window, for a single minute."""
    if covers_full_day(half_width):
        return True
    offset = (minute - center + half_width) % MINUTES_PER_DAY
    return offset < 2 * half_width


def scan_window(
    trips: Iterable[Trip],
    center: int,
    half_width: int = DEFAULT_HALF_WIDTH,
    key: Callable[[Trip], object] = lambda t: t.started_at,
) -> list[Trip]:
    """Linear scan over all trips; the unindexed reference for select_window."""
    out = []
    for trip in trips:
        ts = parse_timestamp(key(trip))
        if ts is not None and in_window(minutes_since_midnight(ts), center, half_width):
            out.append(trip)
    return out
