"""
FTL Error Taxonomy

Typed failures raised by the compliance engine. Parsing and
configuration problems are reported to the caller as one of these,
never as a generic exception and never silently coerced to zero.
"""

from typing import Any


class FTLError(Exception):
    """Base class for every error raised by the FTL engine."""


class ParseFailure(FTLError, ValueError):
    """Malformed duration or clock-time text."""

    def __init__(self, text: Any, reason: str):
        self.text = text
        self.reason = reason
        super().__init__(f"Cannot parse {text!r}: {reason}")


class InvalidRecord(FTLError, ValueError):
    """A duty or flight-hour record that is structurally invalid."""


class OverlapViolation(FTLError):
    """Two duty entries on the same date overlap in wall-clock time."""

    def __init__(self, duty_date, first, second):
        self.duty_date = duty_date
        self.first = first
        self.second = second
        super().__init__(
            f"Overlapping duty on {duty_date.isoformat()}: "
            f"{first.duty_start:%H:%M}-{first.duty_end:%H:%M} and "
            f"{second.duty_start:%H:%M}-{second.duty_end:%H:%M}"
        )


class ConfigurationError(FTLError):
    """Invalid limit table or engine setting. Fatal at load time."""
