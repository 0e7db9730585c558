"""Core dataclasses shared across the traffic aggregation modules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from bike_traffic.config import MINUTES_PER_DAY, UNFILTERED_VALUE


Timestamp = Union[datetime, str, None]


@dataclass(frozen=True)
class Station:
    """A dock location. Identified by its short id, never by position."""

    station_id: str
    longitude: float
    latitude: float
    name: Optional[str] = None


@dataclass(frozen=True)
class Trip:
    """Single ride between two stations."""

    start_station_id: str
    end_station_id: str
    started_at: Timestamp
    ended_at: Timestamp
    trip_id: Optional[str] = None


@dataclass(frozen=True)
class StationMetrics:
    departures: int = 0
    arrivals: int = 0

    @property
    def total_traffic(self) -> int:
        return self.departures + self.arrivals


class RatioClass(float, Enum):
    """Departure share of a station's traffic, quantized into three classes."""

    LOW = 0.0
    BALANCED = 0.5
    HIGH = 1.0


class WindowMode(str, Enum):
    # departures and arrivals windowed separately over their own index
    INDEPENDENT = "independent"
    # one subset: trips whose start or end falls in the window
    EITHER_ENDPOINT = "either-endpoint"


@dataclass(frozen=True)
class TimeFilter:
    """Either unfiltered (``minute is None``) or centred on a minute of the day."""

    minute: Optional[int] = None

    def __post_init__(self):
        if self.minute is not None and not 0 <= self.minute < MINUTES_PER_DAY:
            raise ValueError(
                f"minute must be in [0, {MINUTES_PER_DAY - 1}], got {self.minute}")

    @classmethod
    def unfiltered(cls) -> "TimeFilter":
        return cls(None)

    @classmethod
    def centered(cls, minute: int) -> "TimeFilter":
        return cls(int(minute))

    @classmethod
    def from_control(cls, value) -> "TimeFilter":
        """Translate a slider value; -1 means any time, out-of-range values clamp."""
        if isinstance(value, bool) or int(value) != value:
            raise ValueError(f"control value must be an integer, got {value!r}")
        value = int(value)
        value = min(max(value, UNFILTERED_VALUE), MINUTES_PER_DAY - 1)
        if value == UNFILTERED_VALUE:
            return cls.unfiltered()
        return cls.centered(value)

    @property
    def is_filtered(self) -> bool:
        return self.minute is not None

    def to_control(self) -> int:
        return UNFILTERED_VALUE if self.minute is None else self.minute

    def label(self) -> str:
        if self.minute is None:
            return "any time"
        hour, minute = divmod(self.minute, 60)
        suffix = "AM" if hour < 12 else "PM"
        return f"{(hour % 12) or 12}:{minute:02d} {suffix}"


@dataclass(frozen=True)
class EncodedStation:
    radius: float
    ratio_class: RatioClass
    tooltip: str


@dataclass(frozen=True)
class Marker:
    """What the render surface needs to draw one station."""

    station_id: str
    x: float
    y: float
    radius: float
    ratio_class: RatioClass
    tooltip: str
