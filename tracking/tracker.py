"""
Simulated train tracking.

There is no GPS feed: a train's position is derived from its timetable and
the current clock time.  TrainTracker owns two pieces of state:

  routes     train_id → Route, built lazily once per train.  Routes are
             keyed per train, not per corridor, because two trains on the
             same corridor run at different times.
  snapshots  train_id → JourneyPosition for every train running at the
             last refresh().  Replaced wholesale on each refresh, so readers
             never see a half-updated map.

get_journey_position() never touches the snapshot map; it recomputes from
scratch and is safe to call at any time alongside the periodic refresh.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Mapping, Optional

from journey.position import JourneyPosition, is_running, locate, progress_for_clock
from journey.schedule import TrainSchedule, TrainStatus
from journey.timetable import Route, build_route, generic_stop_names

logger = logging.getLogger(__name__)


class TrainTracker:
    def __init__(
        self,
        trains: Iterable[TrainSchedule],
        route_stops: Optional[Mapping[tuple[str, str], list[str]]] = None,
        station_codes: Optional[Mapping[str, str]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._trains: dict[str, TrainSchedule] = {t.id: t for t in trains}
        self._route_stops = dict(route_stops or {})
        self._codes = dict(station_codes or {})
        self._clock = clock
        self._routes: dict[str, Route] = {}
        self._snapshots: dict[str, JourneyPosition] = {}
        self._last_refreshed_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    @property
    def trains(self) -> list[TrainSchedule]:
        return list(self._trains.values())

    def train(self, train_id: str) -> TrainSchedule:
        """Raises KeyError for an unknown train id."""
        try:
            return self._trains[train_id]
        except KeyError:
            raise KeyError(f"Unknown train id {train_id!r}.") from None

    def route_for(self, train_id: str) -> Route:
        """
        The train's timetable, built on first use.

        Raises:
            KeyError:          unknown train id.
            InvalidRouteError: the train's stop list is unusable.
            ParseError:        the train's clock times are malformed.
        """
        route = self._routes.get(train_id)
        if route is not None:
            return route

        train = self.train(train_id)
        stops = self._route_stops.get(train.route_key)
        if stops is None:
            stops = generic_stop_names(train.distance_km)
            logger.debug(
                "No stop list for %s → %s; using %d generic stops.",
                train.source, train.destination, len(stops),
            )
        route = build_route(
            train.departure_time,
            train.arrival_time,
            [train.source, *stops, train.destination],
            codes=self._codes,
            distance_km=train.distance_km,
            route_id=f"{train.source}-{train.destination}",
        )
        self._routes[train_id] = route
        return route

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def _now_hhmm(self, now: Optional[datetime]) -> tuple[datetime, str]:
        now = now or self._clock()
        return now, now.strftime("%H:%M")

    def is_running(self, train_id: str, now: Optional[datetime] = None) -> bool:
        train = self.train(train_id)
        _, hhmm = self._now_hhmm(now)
        return train.status is not TrainStatus.CANCELLED and is_running(
            hhmm, train.departure_time, train.arrival_time
        )

    def get_journey_position(
        self,
        train_id: str,
        now: Optional[datetime] = None,
        progress: Optional[float] = None,
        strict: bool = False,
    ) -> JourneyPosition:
        """
        Position of a train at `now` (default: the injected clock), or at an
        explicit journey `progress` percentage when one is given.
        """
        train = self.train(train_id)
        route = self.route_for(train_id)
        now, hhmm = self._now_hhmm(now)

        if progress is None:
            progress = progress_for_clock(hhmm, train.departure_time, train.arrival_time)
        fragment = locate(route, progress, strict=strict)
        progress = min(100.0, max(0.0, float(progress)))

        return JourneyPosition(
            train_id=train.id,
            train_number=train.number,
            last_station=fragment.last_station,
            next_station=fragment.next_station,
            last_station_time=fragment.last_time,
            next_station_time=fragment.next_time,
            progress_percent=progress,
            segment_progress=fragment.segment_progress,
            status=train.status.value,
            route_stations=tuple(route.station_names()),
            computed_at=now,
        )

    def refresh(self, now: Optional[datetime] = None) -> int:
        """
        Recompute positions for every running train and swap in the new
        snapshot map.  Trains whose data cannot be routed are logged and
        left out.  Returns the number of active trains.
        """
        now = now or self._clock()
        snapshots: dict[str, JourneyPosition] = {}
        for train_id in self._trains:
            try:
                if not self.is_running(train_id, now):
                    continue
                snapshots[train_id] = self.get_journey_position(train_id, now)
            except ValueError as exc:
                logger.warning("Train %s position unavailable: %s", train_id, exc)
        self._snapshots = snapshots
        self._last_refreshed_at = now
        logger.debug("Tracking refresh: %d active trains.", len(snapshots))
        return len(snapshots)

    def active_positions(self) -> list[JourneyPosition]:
        return list(self._snapshots.values())

    def snapshot(self, train_id: str) -> Optional[JourneyPosition]:
        return self._snapshots.get(train_id)

    @property
    def last_refreshed_at(self) -> Optional[datetime]:
        return self._last_refreshed_at
