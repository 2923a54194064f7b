"""
Loads the static Sri Lankan train dataset into the local database.

Files (under STATIC_DATA_DIR):
  stations.csv     → Station
  trains.csv       → Train
  route_stops.csv  → RouteStop   (intermediate stops per corridor)

trains.csv may give fares either as three per-class columns or as a single
legacy flat_fare column.  Both are normalised into per-class fares here, once,
so nothing downstream ever sees the legacy shape.
"""

import logging
from collections import defaultdict
from pathlib import Path

import pandas as pd
from sqlalchemy.orm import Session

from config import STATIC_DATA_DIR
from db.models import RouteStop, Station, Train
from journey.clock import get_duration_in_minutes, hhmm_to_minutes
from journey.fares import FareTable, normalize_fare
from journey.schedule import TrainSchedule, TrainStatus

logger = logging.getLogger(__name__)

_FARE_COLUMNS = {
    "firstClass": "first_class_fare",
    "secondClass": "second_class_fare",
    "thirdClass": "third_class_fare",
}


def load_static_data(session: Session, data_dir: Path = STATIC_DATA_DIR) -> dict[str, int]:
    """
    Replace the stored catalogue with the CSV files in data_dir.

    Returns a {table: row_count} summary.
    """
    data_dir = Path(data_dir)
    logger.info("Loading static train data from %s", data_dir)

    def read(filename: str) -> pd.DataFrame:
        return pd.read_csv(data_dir / filename, dtype=str).fillna("")

    counts = {
        "stations": _parse_stations(read("stations.csv"), session),
        "trains": _parse_trains(read("trains.csv"), session),
    }
    route_stops_path = data_dir / "route_stops.csv"
    counts["route_stops"] = (
        _parse_route_stops(read("route_stops.csv"), session)
        if route_stops_path.exists() else 0
    )
    session.commit()
    logger.info("Static data committed: %s", counts)
    return counts


def _parse_stations(df: pd.DataFrame, session: Session) -> int:
    session.query(Station).delete()
    seen: set[str] = set()
    for _, row in df.iterrows():
        name = row["name"].strip()
        if name in seen:
            logger.warning("Skipping duplicate station %r.", name)
            continue
        seen.add(name)
        session.add(Station(
            id=row["id"],
            name=name,
            code=row["code"],
            city=row.get("city", ""),
            province=row.get("province", ""),
            address=row.get("address", ""),
        ))
    logger.info("Loaded %d stations.", len(seen))
    return len(seen)


def _parse_trains(df: pd.DataFrame, session: Session) -> int:
    session.query(Train).delete()
    loaded = 0
    skipped = 0
    for _, row in df.iterrows():
        try:
            fares = _row_fare_table(row)
            get_duration_in_minutes(row["duration"])
            hhmm_to_minutes(row["departure_time"])
            hhmm_to_minutes(row["arrival_time"])
            status = TrainStatus.parse(row.get("status") or "On Time")
            distance_km = float(row["distance_km"] or 0)
        except ValueError as exc:
            logger.warning("Skipping train %s (%s): %s", row["id"], row.get("name", ""), exc)
            skipped += 1
            continue
        session.add(Train(
            id=row["id"],
            name=row["name"],
            number=row["number"],
            source=row["source"],
            destination=row["destination"],
            departure_time=row["departure_time"],
            arrival_time=row["arrival_time"],
            duration=row["duration"],
            distance_km=distance_km,
            fare_first=fares.first_class,
            fare_second=fares.second_class,
            fare_third=fares.third_class,
            amenities=row.get("amenities", ""),
            status=status.value,
            train_type=row.get("train_type") or "Express",
            frequency=row.get("frequency") or "Daily",
        ))
        loaded += 1
    if skipped:
        logger.warning("Skipped %d trains with invalid schedule or fare data.", skipped)
    logger.info("Loaded %d trains.", loaded)
    return loaded


def _row_fare_table(row: pd.Series) -> FareTable:
    """Per-class columns win; a legacy flat_fare is expanded with the policy multipliers."""
    per_class = {
        cls: row.get(col, "") for cls, col in _FARE_COLUMNS.items()
    }
    if any(v != "" for v in per_class.values()):
        return normalize_fare(per_class)
    flat = row.get("flat_fare", "")
    if flat == "":
        return FareTable()
    logger.debug("Migrating flat fare %r for train %s.", flat, row["id"])
    return normalize_fare(flat)


def _parse_route_stops(df: pd.DataFrame, session: Session) -> int:
    session.query(RouteStop).delete()
    records = [
        RouteStop(
            source=row["source"],
            destination=row["destination"],
            stop_sequence=int(row["stop_sequence"]),
            station_name=row["station_name"],
        )
        for _, row in df.iterrows()
    ]
    session.bulk_save_objects(records)
    logger.info("Loaded %d route stops.", len(records))
    return len(records)


# ---------------------------------------------------------------------------
# Readers: DB rows → journey model values
# ---------------------------------------------------------------------------

def to_schedule(train: Train) -> TrainSchedule:
    return TrainSchedule(
        id=train.id,
        name=train.name,
        number=train.number,
        source=train.source,
        destination=train.destination,
        departure_time=train.departure_time,
        arrival_time=train.arrival_time,
        duration_minutes=get_duration_in_minutes(train.duration),
        distance_km=train.distance_km or 0.0,
        fare_table=FareTable(
            first_class=train.fare_first,
            second_class=train.fare_second,
            third_class=train.fare_third,
        ),
        amenities=frozenset(a for a in (train.amenities or "").split("|") if a),
        status=TrainStatus.parse(train.status),
        frequency=train.frequency,
        train_type=train.train_type,
    )


def load_trains(session: Session) -> list[TrainSchedule]:
    """All stored trains as TrainSchedule values, ordered by numeric id."""
    rows = session.query(Train).all()
    rows.sort(key=lambda t: (len(t.id), t.id))
    return [to_schedule(t) for t in rows]


def load_route_stops(session: Session) -> dict[tuple[str, str], list[str]]:
    """(source, destination) → ordered intermediate stop names."""
    rows = (
        session.query(RouteStop)
        .order_by(RouteStop.source, RouteStop.destination, RouteStop.stop_sequence)
        .all()
    )
    stops: dict[tuple[str, str], list[str]] = defaultdict(list)
    for r in rows:
        stops[(r.source, r.destination)].append(r.station_name)
    return dict(stops)


def load_station_codes(session: Session) -> dict[str, str]:
    return {name: code for name, code in session.query(Station.name, Station.code).all()}


def search_stations(session: Session, query: str, limit: int = 20) -> list[Station]:
    """Stations whose name contains `query`, case-insensitively."""
    return (
        session.query(Station)
        .filter(Station.name.ilike(f"%{query}%"))
        .order_by(Station.name)
        .limit(limit)
        .all()
    )
