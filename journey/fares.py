"""
Ticket fare calculation.

  total = (base_fare[class] + service_fee + tax) * passengers

Fares arrive in several legacy shapes (a per-class mapping, a bare number,
or a display string such as "Rs 1,100").  normalize_fare() turns any of
them into a FareTable once, at data-load time; everything downstream works
with FareTable only.

A flat fare is expanded with fixed policy multipliers (first ×1.5,
second ×1.0, third ×0.8).  These are a business rule, not derived values.
"""

import enum
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from journey.errors import InvalidClassError, ParseError

logger = logging.getLogger(__name__)

FLAT_FARE_MULTIPLIERS = {
    "firstClass": 1.5,
    "secondClass": 1.0,
    "thirdClass": 0.8,
}


class FareClass(str, enum.Enum):
    FIRST = "firstClass"
    SECOND = "secondClass"
    THIRD = "thirdClass"

    @classmethod
    def parse(cls, value: Union["FareClass", str]) -> "FareClass":
        """Accept the enum, its value, or the short UI labels "1st"/"2nd"/"3rd"."""
        if isinstance(value, FareClass):
            return value
        key = str(value).strip()
        alias = _CLASS_ALIASES.get(key.lower())
        if alias is not None:
            return alias
        raise InvalidClassError(
            f"Unknown fare class {value!r}; expected one of "
            f"{', '.join(c.value for c in cls)}."
        )


_CLASS_ALIASES: dict[str, FareClass] = {
    "firstclass": FareClass.FIRST,
    "first": FareClass.FIRST,
    "1st": FareClass.FIRST,
    "secondclass": FareClass.SECOND,
    "second": FareClass.SECOND,
    "2nd": FareClass.SECOND,
    "thirdclass": FareClass.THIRD,
    "third": FareClass.THIRD,
    "3rd": FareClass.THIRD,
}


@dataclass(frozen=True)
class FareTable:
    first_class: Optional[float] = None
    second_class: Optional[float] = None
    third_class: Optional[float] = None

    @classmethod
    def from_flat(cls, amount: float) -> "FareTable":
        return cls(
            first_class=amount * FLAT_FARE_MULTIPLIERS["firstClass"],
            second_class=amount * FLAT_FARE_MULTIPLIERS["secondClass"],
            third_class=amount * FLAT_FARE_MULTIPLIERS["thirdClass"],
        )

    def price_for(self, fare_class: FareClass) -> float:
        """
        Base fare for one passenger.  A tier missing from the table falls back
        to the second-class price.
        """
        price = {
            FareClass.FIRST: self.first_class,
            FareClass.SECOND: self.second_class,
            FareClass.THIRD: self.third_class,
        }[fare_class]
        if price is None:
            price = self.second_class
        if price is None:
            raise InvalidClassError(f"No fare available for {fare_class.value}.")
        return price

    def as_dict(self) -> dict[str, Optional[float]]:
        return {
            "firstClass": self.first_class,
            "secondClass": self.second_class,
            "thirdClass": self.third_class,
        }


def normalize_fare(raw: Any) -> FareTable:
    """
    Convert any supported fare shape to a FareTable.

    Raises:
        ParseError: for strings with no digits or unsupported types.
    """
    if isinstance(raw, FareTable):
        return raw
    if isinstance(raw, Mapping):
        values: dict[FareClass, Optional[float]] = {c: None for c in FareClass}
        for key, amount in raw.items():
            if amount is None or amount == "":
                continue
            values[FareClass.parse(key)] = float(amount)
        return FareTable(
            first_class=values[FareClass.FIRST],
            second_class=values[FareClass.SECOND],
            third_class=values[FareClass.THIRD],
        )
    if isinstance(raw, bool):
        raise ParseError(f"Unsupported fare value {raw!r}.")
    if isinstance(raw, (int, float)):
        return FareTable.from_flat(float(raw))
    if isinstance(raw, str):
        # "Rs 1,100" → 1100; display strings never carry cents
        digits = re.sub(r"\D", "", raw)
        if not digits:
            raise ParseError(f"No amount found in fare {raw!r}.")
        logger.debug("Migrating legacy flat fare %r.", raw)
        return FareTable.from_flat(float(digits))
    raise ParseError(f"Unsupported fare type {type(raw).__name__}.")


def compute_fare(
    fare_table: Any,
    selected_class: Union[FareClass, str],
    passenger_count: int,
    service_fee: float = 0.0,
    tax: float = 0.0,
) -> float:
    """
    Total ticket price for `passenger_count` passengers.

    Raises:
        InvalidClassError: unknown class, or no price for it in the table.
        ValueError:        passenger_count < 1, or a negative fee/tax.
    """
    if passenger_count < 1:
        raise ValueError(f"passenger_count must be at least 1, got {passenger_count}.")
    if service_fee < 0 or tax < 0:
        raise ValueError("service_fee and tax must not be negative.")

    fare_class = FareClass.parse(selected_class)
    base = normalize_fare(fare_table).price_for(fare_class)
    return (base + service_fee + tax) * passenger_count
