"""
SCORM session time normalization

Players report session time as SCORM 1.2 ``CMITimespan`` (``HHHH:MM:SS.SS``),
SCORM 2004 ISO 8601 durations (``PT1H2M3.5S``) or, from the platform's own
player shim, plain seconds. Everything is normalized to float seconds.
"""

import math
import re
from typing import Union

_TIMESPAN_RE = re.compile(r"^(\d{1,4}):([0-5]?\d):([0-5]?\d(?:\.\d{1,2})?)$")

_DURATION_RE = re.compile(
    r"^P(?!$)"
    r"(?:(?P<years>\d+(?:\.\d+)?)Y)?"
    r"(?:(?P<months>\d+(?:\.\d+)?)M)?"
    r"(?:(?P<weeks>\d+(?:\.\d+)?)W)?"
    r"(?:(?P<days>\d+(?:\.\d+)?)D)?"
    r"(?:T(?=\d)"
    r"(?:(?P<hours>\d+(?:\.\d+)?)H)?"
    r"(?:(?P<minutes>\d+(?:\.\d+)?)M)?"
    r"(?:(?P<seconds>\d+(?:\.\d+)?)S)?"
    r")?$"
)

# Calendar units use the nominal lengths SCORM 2004 RTE prescribes.
_UNIT_SECONDS = {
    "years": 365 * 24 * 3600,
    "months": 30 * 24 * 3600,
    "weeks": 7 * 24 * 3600,
    "days": 24 * 3600,
    "hours": 3600,
    "minutes": 60,
    "seconds": 1,
}


def parse_session_time(value: Union[str, int, float]) -> float:
    """Convert a reported session time to seconds.

    Raises:
        ValueError: the value is negative or in no recognised format
    """
    if isinstance(value, bool):
        raise ValueError("session time must be a number or a time string")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip()
        if not text:
            raise ValueError("session time is empty")
        seconds = _parse_text(text)
    if not math.isfinite(seconds):
        raise ValueError("session time must be finite")
    if seconds < 0:
        raise ValueError("session time cannot be negative")
    return seconds


def _parse_text(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        pass

    match = _TIMESPAN_RE.match(text)
    if match:
        hours, minutes, seconds = match.groups()
        return int(hours) * 3600 + int(minutes) * 60 + float(seconds)

    match = _DURATION_RE.match(text.upper())
    if match:
        return sum(
            float(amount) * _UNIT_SECONDS[unit]
            for unit, amount in match.groupdict().items()
            if amount is not None
        )

    raise ValueError(f"unrecognised session time format: {text!r}")
