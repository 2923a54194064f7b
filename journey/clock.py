"""
Clock-time and duration helpers.

Schedule times are plain HH:MM strings with no date attached.  A journey is
assumed to last at most 24 hours, so every elapsed-time computation is taken
modulo one day (1440 minutes).  An arrival clock time equal to the departure
clock time is read as a full-day journey rather than a zero-length one;
clock-only input cannot tell the two apart.
"""

import math
import re

from journey.errors import ParseError

MINUTES_PER_DAY = 24 * 60

_HOURS_RE = re.compile(r"(\d+)\s*h", re.IGNORECASE)
_MINUTES_RE = re.compile(r"(\d+)\s*m", re.IGNORECASE)


def get_duration_in_minutes(duration: str) -> int:
    """
    Convert a duration string such as "8h 35m", "45m" or "3h" to minutes.

    Raises:
        ParseError: if neither an hour nor a minute token is present.
    """
    if not isinstance(duration, str):
        raise ParseError(f"Duration must be a string, got {type(duration).__name__}.")
    hours = _HOURS_RE.search(duration)
    minutes = _MINUTES_RE.search(duration)
    if hours is None and minutes is None:
        raise ParseError(f"No hour or minute token found in duration {duration!r}.")

    total = 0
    if hours:
        total += int(hours.group(1)) * 60
    if minutes:
        total += int(minutes.group(1))
    return total


def hhmm_to_minutes(hhmm: str) -> int:
    """
    Convert HH:MM (or HH:MM:SS, seconds ignored) to minutes past midnight.

    Raises:
        ParseError: on malformed input or an out-of-range hour/minute.
    """
    try:
        parts = hhmm.strip().split(":")
        if len(parts) not in (2, 3):
            raise ValueError("expected HH:MM")
        hours, minutes = int(parts[0]), int(parts[1])
    except (AttributeError, ValueError) as exc:
        raise ParseError(f"Invalid clock time {hhmm!r}: {exc}") from exc
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ParseError(f"Clock time {hhmm!r} is out of range.")
    return hours * 60 + minutes


def minutes_to_hhmm(minutes: float) -> str:
    """Format minutes past midnight (any value, wrapped to one day) as HH:MM."""
    total = math.floor(minutes) % MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def journey_minutes(departure: str, arrival: str) -> int:
    """Total journey length in minutes; 0 wraps to a full 1440-minute day."""
    total = (hhmm_to_minutes(arrival) - hhmm_to_minutes(departure)) % MINUTES_PER_DAY
    return total or MINUTES_PER_DAY


def elapsed_minutes(departure: str, now: str) -> int:
    """Minutes since departure, modulo one day (always 0..1439)."""
    return (hhmm_to_minutes(now) - hhmm_to_minutes(departure)) % MINUTES_PER_DAY


def adjust_time(hhmm: str, delta_minutes: int) -> str:
    """Shift a clock time by delta_minutes, wrapping around midnight."""
    return minutes_to_hhmm(hhmm_to_minutes(hhmm) + delta_minutes)
