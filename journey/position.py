"""
Maps journey progress onto a Route segment.

Progress is a 0–100 percentage of the whole journey.  With n stations the
route has n-1 equal-width segments; the segment index is

  floor(progress / (100 / (n - 1)))   clamped to [0, n-2]

so progress 0 is always (station 0 → station 1) and progress 100 is always
(station n-2 → station n-1).  Everything here is a pure function of its
arguments.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from journey.clock import (
    MINUTES_PER_DAY,
    elapsed_minutes,
    hhmm_to_minutes,
    journey_minutes,
)
from journey.errors import InvalidProgressError
from journey.timetable import Route


@dataclass(frozen=True)
class PositionFragment:
    last_station: str
    next_station: str
    last_time: str        # departure time at last_station
    next_time: str        # arrival time at next_station
    segment_index: int
    segment_progress: float  # 0–100 within the current segment


@dataclass(frozen=True)
class JourneyPosition:
    train_id: str
    train_number: str
    last_station: str
    next_station: str
    last_station_time: str
    next_station_time: str
    progress_percent: float
    segment_progress: float
    status: str
    route_stations: tuple[str, ...] = ()
    computed_at: datetime = field(default_factory=datetime.now)

    @property
    def has_arrived(self) -> bool:
        return self.progress_percent >= 100


def check_progress(progress_percent: float, strict: bool = False) -> float:
    """
    Return progress clamped to [0, 100].

    Raises:
        InvalidProgressError: for NaN, or for any out-of-range value when strict.
    """
    if progress_percent is None or math.isnan(progress_percent):
        raise InvalidProgressError("Progress must be a number.")
    if strict and not (0 <= progress_percent <= 100):
        raise InvalidProgressError(f"Progress {progress_percent} is outside [0, 100].")
    return min(100.0, max(0.0, float(progress_percent)))


def locate(route: Route, progress_percent: float, strict: bool = False) -> PositionFragment:
    """Return the segment of `route` containing `progress_percent`."""
    progress = check_progress(progress_percent, strict=strict)
    stations = route.stations
    n = len(stations)
    segment_width = 100 / (n - 1)

    if progress <= 0:
        index, within = 0, 0.0
    elif progress >= 100:
        index, within = n - 2, 100.0
    else:
        index = min(max(math.floor(progress / segment_width), 0), n - 2)
        within = (progress - index * segment_width) / segment_width * 100
        within = min(100.0, max(0.0, within))

    a, b = stations[index], stations[index + 1]
    return PositionFragment(
        last_station=a.name,
        next_station=b.name,
        last_time=a.departure_time,
        next_time=b.arrival_time,
        segment_index=index,
        segment_progress=within,
    )


def progress_for_clock(now: str, departure: str, arrival: str) -> float:
    """Journey completion (0–100) at clock time `now`, clamped."""
    elapsed = elapsed_minutes(departure, now)
    total = journey_minutes(departure, arrival)
    return min(100.0, max(0.0, elapsed / total * 100))


def locate_by_clock(
    route: Route,
    now: str,
    departure: str,
    arrival: str,
    strict: bool = False,
) -> PositionFragment:
    """
    Locate a train by wall-clock time instead of an explicit progress value.

    A clock time before departure wraps to the previous day's journey and is
    clamped to 100; use is_running() to tell the two cases apart.
    """
    return locate(route, progress_for_clock(now, departure, arrival), strict=strict)


def is_running(now: str, departure: str, arrival: str) -> bool:
    """True while `now` lies within [departure, arrival], overnight included."""
    return elapsed_minutes(departure, now) <= journey_minutes(departure, arrival)


def time_to_next_station(now: str, next_time: Optional[str]) -> str:
    """
    Human-readable wait until `next_time`, e.g. "1 hr 5 min" or "12 min".

    A next_time earlier than now is taken to be on the following day.
    """
    if not next_time:
        return "0 min"
    diff = (hhmm_to_minutes(next_time) - hhmm_to_minutes(now)) % MINUTES_PER_DAY
    hours, minutes = divmod(diff, 60)
    if hours > 0:
        return f"{hours} hr {minutes} min"
    return f"{minutes} min"
