from __future__ import annotations

from typing import Mapping

import numpy as np

from bike_traffic.config import (
    ARRIVAL_COLOR,
    DEPARTURE_COLOR,
    RADIUS_RANGE_FILTERED,
    RADIUS_RANGE_UNFILTERED,
)
from bike_traffic.domain_types import EncodedStation, RatioClass, StationMetrics


RATIO_CLASSES = (RatioClass.LOW, RatioClass.BALANCED, RatioClass.HIGH)
# equal-width quantization of [0, 1] into len(RATIO_CLASSES) buckets
RATIO_THRESHOLDS = np.linspace(0.0, 1.0, len(RATIO_CLASSES) + 1)[1:-1]


def sqrt_scale(values, domain_max: float, out_range: tuple[float, float]) -> np.ndarray:
    """
    Map values in [0, domain_max] to out_range so marker *area* tracks the value.

    With domain_max == 0 every value maps to the range minimum.
    """
    values = np.asarray(values, dtype=float)
    r0, r1 = out_range
    if domain_max <= 0:
        return np.full(values.shape, float(r0))
    t = np.sqrt(np.clip(values / float(domain_max), 0.0, 1.0))
    return r0 + (r1 - r0) * t


def radius_range(filtered: bool) -> tuple[float, float]:
    return RADIUS_RANGE_FILTERED if filtered else RADIUS_RANGE_UNFILTERED


def ratio_class(departures: int, total: int) -> RatioClass:
    # undefined ratio -> midpoint
    if total <= 0:
        return RatioClass.BALANCED
    share = departures / total
    return RATIO_CLASSES[int(np.digitize(share, RATIO_THRESHOLDS))]


def tooltip(m: StationMetrics) -> str:
    return f"{m.total_traffic} trips ({m.departures} departures, {m.arrivals} arrivals)"


def encode(metrics: Mapping[str, StationMetrics], filtered: bool) -> dict[str, EncodedStation]:
    """Radius, ratio class and tooltip for every station in a metrics snapshot."""
    ids = list(metrics)
    totals = np.array([metrics[i].total_traffic for i in ids], dtype=float)
    domain_max = float(totals.max()) if len(totals) else 0.0
    radii = sqrt_scale(totals, domain_max, radius_range(filtered))

    return {
        sid: EncodedStation(
            radius=float(r),
            ratio_class=ratio_class(metrics[sid].departures, metrics[sid].total_traffic),
            tooltip=tooltip(metrics[sid]),
        )
        for sid, r in zip(ids, radii)
    }


def _hex_to_rgb(color: str) -> np.ndarray:
    color = color.lstrip("#")
    return np.array([int(color[k:k + 2], 16) for k in (0, 2, 4)], dtype=float)


def ratio_color(ratio: RatioClass) -> str:
    """Mix of the departure and arrival colours, weighted by the departure share."""
    t = float(ratio.value)
    rgb = t * _hex_to_rgb(DEPARTURE_COLOR) + (1.0 - t) * _hex_to_rgb(ARRIVAL_COLOR)
    r, g, b = np.round(rgb).astype(int)
    return f"rgb({r},{g},{b})"
