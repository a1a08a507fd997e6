"""Human-readable duration strings ("15m", "7d") used by token and cookie settings."""

import re
from datetime import timedelta
from typing import Optional


DEFAULT_DURATION = timedelta(minutes=15)
MIN_DURATION = timedelta(seconds=1)

_DURATION_RE = re.compile(r"^(\d+)(ms|s|m|h|d)$")

_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}


def parse_duration(value: Optional[str], fallback: timedelta = DEFAULT_DURATION) -> timedelta:
    """
    Parse "<int><unit>" where unit is ms, s, m, h or d.

    Anything else (empty, "1w", "15 minutes", "-5m") returns the fallback
    instead of raising. So does anything shorter than one second ("500ms",
    "0s"), because cookie Max-Age and JWT exp are whole seconds.

    Example:
        >>> parse_duration("7d")
        datetime.timedelta(days=7)
        >>> parse_duration("soon")
        datetime.timedelta(seconds=900)
    """
    if not value:
        return fallback
    match = _DURATION_RE.match(value.strip())
    if not match:
        return fallback
    amount, unit = match.groups()
    duration = int(amount) * _UNITS[unit]
    if duration < MIN_DURATION:
        return fallback
    return duration
