"""
Daily Aggregator

Reduces duty entries and per-aircraft flight-hour entries to one
DailyTotals per calendar date.

Overnight duty is attributed wholly to its start date by default. The
attribution policy is a plain function so it can be swapped without
touching the rolling window engine.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from duration_codec import MINUTES_PER_HOUR
from ftl_config import FTL_STANDBY_CREDIT, FTL_STRICT_OVERLAP
from ftl_errors import InvalidRecord, OverlapViolation
from records import (
    MINUTES_PER_DAY,
    AircraftRegistry,
    DailyTotals,
    DutyEntry,
    DutyKind,
    FlightHourEntry,
)

logger = logging.getLogger(__name__)

# (date, minutes) portions of one duty entry
Attribution = Callable[[DutyEntry], List[Tuple[date, int]]]


# =====================================================
# Attribution Policies
# =====================================================

def attribute_to_start_date(entry: DutyEntry) -> List[Tuple[date, int]]:
    """Whole duty counted on the date it starts, even past midnight."""
    return [(entry.duty_date, entry.duration_min)]


def split_at_midnight(entry: DutyEntry) -> List[Tuple[date, int]]:
    """Overnight duty split between the two calendar dates it spans."""
    if not entry.crosses_midnight:
        return [(entry.duty_date, entry.duration_min)]

    before = MINUTES_PER_DAY - entry.start_min
    after = entry.end_min - MINUTES_PER_DAY
    portions = [(entry.duty_date, before)]
    if after > 0:
        if entry.duty_date == date.max:
            raise InvalidRecord(f"Duty on {entry.duty_date.isoformat()} runs past the last representable date")
        portions.append((entry.duty_date + timedelta(days=1), after))
    return portions


ATTRIBUTION_POLICIES: Dict[str, Attribution] = {
    "start_date": attribute_to_start_date,
    "split_at_midnight": split_at_midnight,
}


def get_attribution(name: Optional[str]) -> Attribution:
    """Resolve an attribution policy by name (default: start_date)."""
    if not name:
        return attribute_to_start_date
    try:
        return ATTRIBUTION_POLICIES[name]
    except KeyError:
        raise InvalidRecord(
            f"Unknown attribution policy {name!r}; expected one of {sorted(ATTRIBUTION_POLICIES)}"
        )


def duty_credit(kind: DutyKind, standby_credit: float = FTL_STANDBY_CREDIT) -> float:
    """Fraction of a period of this kind counted as duty time."""
    if kind is DutyKind.REST:
        return 0.0
    if kind is DutyKind.STANDBY:
        return standby_credit
    return 1.0


# =====================================================
# Overlap Detection
# =====================================================

def find_overlap(entries: Sequence[DutyEntry]) -> Optional[Tuple[DutyEntry, DutyEntry]]:
    """
    Return the first pair of same-date entries that overlap, if any.

    Touching entries (one ends exactly when the next starts) do not
    overlap.
    """
    by_date: Dict[date, List[DutyEntry]] = defaultdict(list)
    for entry in entries:
        by_date[entry.duty_date].append(entry)

    for day in sorted(by_date):
        ordered = sorted(by_date[day], key=lambda e: (e.start_min, e.end_min))
        latest = ordered[0]
        for entry in ordered[1:]:
            if entry.start_min < latest.end_min:
                return latest, entry
            if entry.end_min > latest.end_min:
                latest = entry
    return None


def _check_overlaps(entries: Sequence[DutyEntry], strict: bool) -> None:
    overlap = find_overlap(entries)
    if overlap is None:
        return
    first, second = overlap
    if strict:
        raise OverlapViolation(first.duty_date, first, second)
    logger.warning(
        f"Overlapping duty on {first.duty_date.isoformat()} "
        f"({first.duty_start:%H:%M}-{first.duty_end:%H:%M} / "
        f"{second.duty_start:%H:%M}-{second.duty_end:%H:%M}) summed as given"
    )


# =====================================================
# Aggregation
# =====================================================

def aggregate_day(
    duty_entries: Iterable[DutyEntry],
    flight_entries: Iterable[FlightHourEntry],
    strict: bool = FTL_STRICT_OVERLAP,
    standby_credit: float = FTL_STANDBY_CREDIT,
    attribution: Attribution = attribute_to_start_date,
) -> DailyTotals:
    """
    Reduce one calendar day's records to duty and flight hours.

    Only the duty portions the attribution policy places on that date are
    counted; with split_at_midnight the after-midnight part of an overnight
    entry belongs to the next day and is left out here.

    Args:
        duty_entries: Duty entries that all start on the same date
        flight_entries: Flight-hour entries for that date, any aircraft type
        strict: Raise OverlapViolation instead of summing overlapping duty
        standby_credit: Fraction of standby time counted as duty
        attribution: Policy mapping a duty entry to (date, minutes) portions

    Returns:
        DailyTotals (zero when there are no entries)

    Raises:
        InvalidRecord: If the entries span more than one date
        OverlapViolation: In strict mode, if two duty entries overlap
    """
    duty_entries = list(duty_entries)
    flight_entries = list(flight_entries)

    dates = {e.duty_date for e in duty_entries} | {f.flight_date for f in flight_entries}
    if len(dates) > 1:
        listed = ", ".join(d.isoformat() for d in sorted(dates))
        raise InvalidRecord(f"aggregate_day expects a single date, got {listed}")

    _check_overlaps(duty_entries, strict)

    duty_minutes = 0.0
    for entry in duty_entries:
        credit = duty_credit(entry.kind, standby_credit)
        for day, minutes in attribution(entry):
            if day == entry.duty_date:
                duty_minutes += minutes * credit

    return DailyTotals(
        duty_hours=duty_minutes / MINUTES_PER_HOUR,
        flight_hours=sum(f.hours for f in flight_entries),
    )


def aggregate_by_date(
    duty_entries: Iterable[DutyEntry],
    flight_entries: Iterable[FlightHourEntry],
    attribution: Attribution = attribute_to_start_date,
    strict: bool = FTL_STRICT_OVERLAP,
    standby_credit: float = FTL_STANDBY_CREDIT,
) -> Dict[date, DailyTotals]:
    """
    Group records by date and reduce each date to DailyTotals.

    Args:
        duty_entries: Duty entries for one staff member, any dates
        flight_entries: Flight-hour entries for the same staff member
        attribution: Policy mapping a duty entry to (date, minutes) portions
        strict: Raise OverlapViolation instead of summing overlapping duty
        standby_credit: Fraction of standby time counted as duty

    Returns:
        Dict of date -> DailyTotals, only for dates with records
    """
    duty_entries = list(duty_entries)
    _check_overlaps(duty_entries, strict)

    duty_minutes: Dict[date, float] = defaultdict(float)
    flight_hours: Dict[date, float] = defaultdict(float)

    for entry in duty_entries:
        credit = duty_credit(entry.kind, standby_credit)
        for day, minutes in attribution(entry):
            duty_minutes[day] += minutes * credit

    for flight in flight_entries:
        flight_hours[flight.flight_date] += flight.hours

    totals = {
        day: DailyTotals(
            duty_hours=duty_minutes.get(day, 0.0) / MINUTES_PER_HOUR,
            flight_hours=flight_hours.get(day, 0.0),
        )
        for day in set(duty_minutes) | set(flight_hours)
    }
    logger.debug(f"Aggregated {len(duty_entries)} duty entries into {len(totals)} days")
    return totals


def flight_hours_by_type(
    flight_entries: Iterable[FlightHourEntry],
    registry: Optional[AircraftRegistry] = None,
) -> Dict[str, float]:
    """
    Flight hours per aircraft type display name.

    Type ids missing from the registry are kept as-is rather than dropped.
    """
    registry = registry or AircraftRegistry()
    by_type: Dict[str, float] = defaultdict(float)
    for flight in flight_entries:
        by_type[registry.display_name(flight.aircraft_type_id)] += flight.hours
    return dict(by_type)
