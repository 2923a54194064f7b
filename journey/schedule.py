"""Static train schedule records, read-only at runtime."""

import enum
from dataclasses import dataclass, field

from journey.fares import FareTable


class TrainStatus(str, enum.Enum):
    ON_TIME = "On Time"
    DELAYED = "Delayed"
    CANCELLED = "Cancelled"

    @classmethod
    def parse(cls, value: str) -> "TrainStatus":
        normalized = (value or "").strip().lower().replace("_", " ")
        for status in cls:
            if status.value.lower() == normalized or status.name.lower().replace("_", " ") == normalized:
                return status
        if normalized == "ontime":
            return cls.ON_TIME
        raise ValueError(f"Unknown train status {value!r}.")


@dataclass(frozen=True)
class TrainSchedule:
    id: str
    name: str
    number: str
    source: str
    destination: str
    departure_time: str   # HH:MM
    arrival_time: str     # HH:MM, next day for overnight trains
    duration_minutes: int
    distance_km: float
    fare_table: FareTable
    amenities: frozenset[str] = field(default_factory=frozenset)
    status: TrainStatus = TrainStatus.ON_TIME
    frequency: str = "Daily"
    train_type: str = "Express"

    @property
    def route_key(self) -> tuple[str, str]:
        return (self.source, self.destination)


def search_trains(
    trains: list[TrainSchedule], source: str, destination: str
) -> list[TrainSchedule]:
    """Trains running source → destination, names matched case-insensitively."""
    src = source.strip().lower()
    dst = destination.strip().lower()
    return [
        t for t in trains
        if t.source.lower() == src and t.destination.lower() == dst
    ]
