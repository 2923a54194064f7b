"""
Builds an ordered station timetable for one train.

Only the departure and arrival clock times of a train are known, so the
journey is split into equal segments between consecutive stations:

  total    = (arrival - departure) mod 1440      (0 → 1440)
  segment  = total / (stations - 1)
  station i (intermediate) = departure + floor(i * total / (stations - 1))   (mod 1440)

The source station gets the departure time and the destination the arrival
time for both its arrival and departure fields.  No dwell time is modelled,
so intermediate stations also carry one time for both.

A Route is immutable: rebuilding a train's timetable produces a new Route.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from journey.clock import hhmm_to_minutes, journey_minutes, minutes_to_hhmm
from journey.errors import InvalidRouteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Station:
    name: str
    code: str
    arrival_time: str    # HH:MM, may fall on the day after departure
    departure_time: str  # HH:MM


@dataclass(frozen=True)
class Route:
    stations: tuple[Station, ...]
    distance_km: float = 0.0
    duration_minutes: int = 0
    id: str = field(default="")

    def station_count(self) -> int:
        return len(self.stations)

    def station_names(self) -> list[str]:
        return [s.name for s in self.stations]

    def distance_between(self, station_a: str, station_b: str) -> float:
        """
        Distance in km between two stations on this route, assuming equal
        spacing.  Returns 0.0 if either station is not on the route.
        """
        names = self.station_names()
        if station_a not in names or station_b not in names:
            return 0.0
        segments = abs(names.index(station_b) - names.index(station_a))
        return segments / (len(names) - 1) * self.distance_km


def station_code(name: str) -> str:
    """Fallback station code: first three letters, upper-cased."""
    return name.replace(" ", "")[:3].upper()


def build_route(
    departure_time: str,
    arrival_time: str,
    station_names: Sequence[str],
    codes: Optional[Mapping[str, str]] = None,
    distance_km: float = 0.0,
    route_id: str = "",
) -> Route:
    """
    Build a Route with interpolated per-station times.

    Args:
        departure_time: HH:MM at the source station.
        arrival_time:   HH:MM at the destination station.
        station_names:  Ordered names, source first and destination last.
        codes:          Optional name → station code lookup.
        distance_km:    Total route length, kept on the Route for distance queries.
        route_id:       Optional identifier carried on the Route.

    Raises:
        InvalidRouteError: fewer than 2 stations, source == destination,
                           or duplicate station names.
        ParseError:        malformed departure/arrival time.
    """
    names = list(station_names)
    _validate_names(names)
    codes = codes or {}

    dep_min = hhmm_to_minutes(departure_time)
    total = journey_minutes(departure_time, arrival_time)
    segment = total / (len(names) - 1)

    stations: list[Station] = []
    last = len(names) - 1
    for i, name in enumerate(names):
        if i == 0:
            t = departure_time
        elif i == last:
            t = arrival_time
        else:
            # integer floor of i * total / (n - 1), exact for any n
            t = minutes_to_hhmm(dep_min + (i * total) // last)
        stations.append(Station(
            name=name,
            code=codes.get(name) or station_code(name),
            arrival_time=t,
            departure_time=t,
        ))

    logger.debug(
        "Built route %s: %d stations, %d min, %.1f min/segment.",
        route_id or f"{names[0]}-{names[-1]}", len(stations), total, segment,
    )
    return Route(
        stations=tuple(stations),
        distance_km=distance_km,
        duration_minutes=total,
        id=route_id,
    )


def generic_stop_names(distance_km: float) -> list[str]:
    """
    Placeholder intermediate stops for a corridor with no known stop list:
    one every ~30 km, at least five.
    """
    count = max(5, math.floor(distance_km / 30))
    return [f"Station {i}" for i in range(1, count + 1)]


def _validate_names(names: list[str]) -> None:
    if len(names) < 2:
        raise InvalidRouteError(f"A route needs at least 2 stations, got {len(names)}.")
    if names[0] == names[-1]:
        raise InvalidRouteError(f"Source and destination are both {names[0]!r}.")
    seen: set[str] = set()
    dupes = [n for n in names if n in seen or seen.add(n)]
    if dupes:
        raise InvalidRouteError(f"Duplicate station names on route: {sorted(set(dupes))}.")
