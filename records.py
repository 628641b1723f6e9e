"""
Duty & Flight Records

Immutable record types consumed by the FTL engine. Records are
supplied by the roster / duty-log and flight-hours logging
collaborators; the engine never persists them.
"""

import math
import logging
from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Dict, Iterable, Optional

from duration_codec import MINUTES_PER_HOUR, minutes_of_day
from ftl_errors import InvalidRecord

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * MINUTES_PER_HOUR


class Metric(Enum):
    DUTY = "duty"
    FLIGHT = "flight"


class DutyKind(Enum):
    FLIGHT_DUTY = "flight"
    GROUND_DUTY = "ground"
    STANDBY = "standby"
    REST = "rest"

    @classmethod
    def parse(cls, value) -> "DutyKind":
        """Resolve a duty kind from its value or a common roster alias."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.FLIGHT_DUTY
        key = str(value).strip().lower()
        if key in _DUTY_KIND_ALIASES:
            return _DUTY_KIND_ALIASES[key]
        raise InvalidRecord(f"Unknown duty kind: {value!r}")


_DUTY_KIND_ALIASES = {
    "flight": DutyKind.FLIGHT_DUTY, "flight_duty": DutyKind.FLIGHT_DUTY, "fly": DutyKind.FLIGHT_DUTY,
    "ground": DutyKind.GROUND_DUTY, "ground_duty": DutyKind.GROUND_DUTY, "office": DutyKind.GROUND_DUTY,
    "standby": DutyKind.STANDBY, "reserve": DutyKind.STANDBY, "sby": DutyKind.STANDBY,
    "rest": DutyKind.REST, "off": DutyKind.REST,
}


@dataclass(frozen=True)
class DutyEntry:
    """
    One duty period for one staff member on one calendar date.

    Attributes
    ----------
    duty_date : date
        Calendar day (UTC) the duty starts on.
    duty_start : time
        Wall-clock start.
    duty_end : time
        Wall-clock end. An end earlier than the start means the duty
        runs past midnight into the following day.
    kind : DutyKind
        Flight duty, ground duty, standby or rest.
    """
    duty_date: date
    duty_start: time
    duty_end: time
    kind: DutyKind = DutyKind.FLIGHT_DUTY
    staff_id: str = ""

    def __post_init__(self):
        if self.duty_start == self.duty_end:
            raise InvalidRecord(
                f"Duty on {self.duty_date.isoformat()} has zero length "
                f"({self.duty_start:%H:%M}-{self.duty_end:%H:%M})"
            )

    @property
    def crosses_midnight(self) -> bool:
        return self.duty_end < self.duty_start

    @property
    def start_min(self) -> int:
        return minutes_of_day(self.duty_start)

    @property
    def end_min(self) -> int:
        """End in minutes from 00:00 of duty_date (may exceed 1440)."""
        end = minutes_of_day(self.duty_end)
        if self.crosses_midnight:
            end += MINUTES_PER_DAY
        return end

    @property
    def duration_min(self) -> int:
        return self.end_min - self.start_min

    @property
    def duration_hours(self) -> float:
        return self.duration_min / MINUTES_PER_HOUR

    def overlaps(self, other: "DutyEntry") -> bool:
        if self.duty_date != other.duty_date:
            return False
        return self.start_min < other.end_min and other.start_min < self.end_min


@dataclass(frozen=True)
class FlightHourEntry:
    """Logged flight time for one staff member, date and aircraft type."""
    flight_date: date
    aircraft_type_id: str
    hours: float
    staff_id: str = ""

    def __post_init__(self):
        if self.hours is None or not math.isfinite(self.hours):
            raise InvalidRecord(f"Flight hours must be a finite number, got {self.hours!r}")
        if self.hours < 0:
            raise InvalidRecord(f"Flight hours cannot be negative, got {self.hours}")


# =====================================================
# Aircraft Types
# =====================================================

@dataclass(frozen=True)
class AircraftType:
    type_id: str
    name: str
    retired: bool = False


class AircraftRegistry:
    """
    Lookup of aircraft types by id.

    Flight-hour entries only hold the type id, so a renamed or retired
    type still resolves, and an unknown id is shown verbatim.
    """

    def __init__(self, types: Optional[Iterable[AircraftType]] = None):
        self._types: Dict[str, AircraftType] = {}
        for aircraft in types or []:
            self._types[aircraft.type_id] = aircraft

    def __contains__(self, type_id: str) -> bool:
        return type_id in self._types

    def __len__(self) -> int:
        return len(self._types)

    def get(self, type_id: str) -> Optional[AircraftType]:
        return self._types.get(type_id)

    def display_name(self, type_id: str) -> str:
        aircraft = self._types.get(type_id)
        if aircraft is None:
            logger.warning(f"Unresolved aircraft type {type_id!r}, shown verbatim")
            return type_id
        return aircraft.name


# =====================================================
# Daily Totals
# =====================================================

@dataclass(frozen=True)
class DailyTotals:
    """A day's duty and flight hours. Derived on demand, never stored."""
    duty_hours: float = 0.0
    flight_hours: float = 0.0

    def __add__(self, other: "DailyTotals") -> "DailyTotals":
        if not isinstance(other, DailyTotals):
            return NotImplemented
        return DailyTotals(
            duty_hours=self.duty_hours + other.duty_hours,
            flight_hours=self.flight_hours + other.flight_hours,
        )

    def for_metric(self, metric: Metric) -> float:
        if metric is Metric.DUTY:
            return self.duty_hours
        return self.flight_hours

    def to_dict(self) -> Dict[str, float]:
        return {
            "duty_hours": round(self.duty_hours, 4),
            "flight_hours": round(self.flight_hours, 4),
        }


ZERO_TOTALS = DailyTotals()
