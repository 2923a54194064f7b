"""
Validation errors raised by the journey model.

All of them are deterministic input failures: retrying with the same
arguments gives the same error.  Callers surface them as a
"train data unavailable" state instead of crashing.
"""


class JourneyDataError(ValueError):
    """Base class for journey model validation failures."""


class ParseError(JourneyDataError):
    """A duration or clock-time string could not be parsed."""


class InvalidRouteError(JourneyDataError):
    """Fewer than two stations, source == destination, or duplicate names."""


class InvalidClassError(JourneyDataError):
    """Fare class is not one of the three recognised tiers, or has no price."""


class InvalidProgressError(JourneyDataError):
    """Progress value outside [0, 100] under strict validation, or NaN."""
