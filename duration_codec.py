"""
Duration Codec

Converts between human-entered duration text ("HH:MM", "1.5", "2")
and decimal hours.

Input forms:
    "1:30", "01:30", "85:30"  -> clock duration (hours unbounded)
    "1.5", ".25"              -> decimal hours
    "2"                       -> whole hours

Output is always zero-padded "HH:MM". Sub-minute fractions are
truncated so that a reported value never overstates logged time.
"""

import re
import math
from dataclasses import dataclass
from datetime import time
from typing import Any, Union

from ftl_errors import ParseFailure

MINUTES_PER_HOUR = 60

# Guards float noise from h + m/60 so that 10/60 h encodes as 00:10.
_MINUTE_EPSILON = 1e-6

_CLOCK_RE = re.compile(r"^(\d+):(\d{1,2})$", re.ASCII)
_DECIMAL_RE = re.compile(r"^(\d+\.\d*|\.\d+)$", re.ASCII)
_INTEGER_RE = re.compile(r"^\d+$", re.ASCII)


# =====================================================
# Tagged parse result
# =====================================================

@dataclass(frozen=True)
class ClockForm:
    """Text entered as hours and minutes."""
    hours: int
    minutes: int

    @property
    def decimal_hours(self) -> float:
        return self.hours + self.minutes / MINUTES_PER_HOUR


@dataclass(frozen=True)
class DecimalForm:
    """Text entered as decimal (or whole) hours."""
    hours: float

    @property
    def decimal_hours(self) -> float:
        return self.hours


@dataclass(frozen=True)
class Invalid:
    """Text that is neither a clock duration nor a decimal number."""
    text: Any
    reason: str


DurationForm = Union[ClockForm, DecimalForm, Invalid]


def classify(text: Any) -> DurationForm:
    """
    Classify duration text without raising.

    A separator (":") means clock duration; a decimal point without
    separator means decimal hours; bare digits mean whole hours.
    """
    if text is None:
        return Invalid(text, "no value")
    if not isinstance(text, str):
        return Invalid(text, "duration must be text")

    value = text.strip()
    if not value:
        return Invalid(text, "empty value")
    if value.startswith("-"):
        return Invalid(text, "negative durations are not allowed")

    match = _CLOCK_RE.match(value)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if minutes >= MINUTES_PER_HOUR:
            return Invalid(text, f"minutes must be 0-59, got {minutes}")
        return ClockForm(hours, minutes)

    if _INTEGER_RE.match(value):
        return DecimalForm(float(int(value)))

    if _DECIMAL_RE.match(value):
        return DecimalForm(float(value))

    return Invalid(text, "expected HH:MM or decimal hours")


# =====================================================
# Codec
# =====================================================

def decode(text: Any) -> float:
    """
    Convert duration text to decimal hours.

    Args:
        text: Duration in HH:MM, decimal or whole-hour form

    Returns:
        Decimal hours (e.g. "01:30" -> 1.5)

    Raises:
        ParseFailure: If the text is malformed, negative or has
            minutes outside 0-59
    """
    form = classify(text)
    if isinstance(form, Invalid):
        raise ParseFailure(form.text, form.reason)
    return form.decimal_hours


def encode(hours: float) -> str:
    """
    Render decimal hours as zero-padded "HH:MM".

    Fractions of a minute are truncated, not rounded.

    Raises:
        ValueError: If hours is negative or not a finite number
    """
    if hours is None or not math.isfinite(hours):
        raise ValueError(f"Cannot encode non-finite duration: {hours!r}")
    if hours < 0:
        raise ValueError(f"Cannot encode negative duration: {hours}")

    whole_hours, minutes = divmod(to_minutes(hours), MINUTES_PER_HOUR)
    return f"{whole_hours:02d}:{minutes:02d}"


def normalize(text: Any) -> str:
    """Canonicalise entered text to "HH:MM" (e.g. "1.5" -> "01:30", "2" -> "02:00")."""
    return encode(decode(text))


def to_minutes(hours: float) -> int:
    """Whole minutes in a decimal-hour value, truncated like encode()."""
    return int(math.floor(hours * MINUTES_PER_HOUR + _MINUTE_EPSILON))


# =====================================================
# Wall-clock times
# =====================================================

def parse_clock_time(text: Any) -> time:
    """
    Parse a wall-clock time of day ("HH:MM", 00:00-23:59).

    Raises:
        ParseFailure: If the text is not a valid time of day
    """
    if isinstance(text, time):
        return text
    if not isinstance(text, str) or not text.strip():
        raise ParseFailure(text, "expected HH:MM time of day")

    match = _CLOCK_RE.match(text.strip())
    if not match:
        raise ParseFailure(text, "expected HH:MM time of day")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23:
        raise ParseFailure(text, f"hour must be 0-23, got {hours}")
    if minutes >= MINUTES_PER_HOUR:
        raise ParseFailure(text, f"minutes must be 0-59, got {minutes}")
    return time(hours, minutes)


def minutes_of_day(value: time) -> int:
    """Minutes since midnight for a time of day."""
    return value.hour * MINUTES_PER_HOUR + value.minute
