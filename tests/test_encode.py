from __future__ import annotations

import numpy as np
import pytest

from bike_traffic.config import RADIUS_RANGE_FILTERED, RADIUS_RANGE_UNFILTERED
from bike_traffic.domain_types import RatioClass, StationMetrics
from bike_traffic.encode import encode, ratio_class, ratio_color, sqrt_scale, tooltip


def test_sqrt_scale_is_area_proportional():
    out = sqrt_scale([0, 25, 100], 100, (0.0, 10.0))
    assert list(out) == pytest.approx([0.0, 5.0, 10.0])


def test_sqrt_scale_zero_domain_uses_range_minimum():
    out = sqrt_scale([0, 0, 0], 0, (3.0, 50.0))
    assert np.all(out == 3.0)


@pytest.mark.parametrize(
    "departures, total, expected",
    [
        (0, 0, RatioClass.BALANCED),
        (0, 4, RatioClass.LOW),
        (1, 4, RatioClass.LOW),
        (1, 2, RatioClass.BALANCED),
        (3, 4, RatioClass.HIGH),
        (4, 4, RatioClass.HIGH),
    ],
)
def test_ratio_class(departures, total, expected):
    assert ratio_class(departures, total) is expected


def test_tooltip_text():
    assert tooltip(StationMetrics(departures=3, arrivals=4)) == "7 trips (3 departures, 4 arrivals)"


def test_encode_uses_mode_specific_ranges():
    metrics = {
        "busy": StationMetrics(departures=60, arrivals=40),
        "idle": StationMetrics(),
    }

    unfiltered = encode(metrics, filtered=False)
    filtered = encode(metrics, filtered=True)

    assert unfiltered["busy"].radius == pytest.approx(RADIUS_RANGE_UNFILTERED[1])
    assert unfiltered["idle"].radius == pytest.approx(RADIUS_RANGE_UNFILTERED[0])
    assert filtered["busy"].radius == pytest.approx(RADIUS_RANGE_FILTERED[1])
    assert filtered["idle"].radius == pytest.approx(RADIUS_RANGE_FILTERED[0])
    assert filtered["busy"].ratio_class is RatioClass.BALANCED
    assert filtered["idle"].ratio_class is RatioClass.BALANCED
    assert filtered["busy"].tooltip == "100 trips (60 departures, 40 arrivals)"


def test_encode_all_zero_and_empty():
    encoded = encode({"A": StationMetrics(), "B": StationMetrics()}, filtered=True)
    assert {e.radius for e in encoded.values()} == {RADIUS_RANGE_FILTERED[0]}
    assert encode({}, filtered=False) == {}


def test_ratio_colors_mix_departure_and_arrival_colours():
    assert ratio_color(RatioClass.HIGH) == "rgb(70,130,180)"
    assert ratio_color(RatioClass.LOW) == "rgb(255,140,0)"
    assert ratio_color(RatioClass.BALANCED).startswith("rgb(")
