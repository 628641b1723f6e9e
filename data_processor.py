"""
Data Processor Module

Turns raw records supplied by the roster / duty-log and flight-hours
logging collaborators into DutyEntry and FlightHourEntry values, and
wraps the FTL pipeline (aggregate -> window -> evaluate -> project)
behind a single facade used by the API and exports.

Accepted record shapes (JSON-friendly dicts):

    duty:   {"date": "2026-03-01", "duty_start": "22:00", "duty_end": "06:00",
             "kind": "flight"}
    flight: {"date": "2026-03-01", "aircraft_type_id": "A320", "hours": "01:30"}
    log:    {"date": "2026-03-01", "duty_start": ..., "duty_end": ...,
             "standby_on": ..., "standby_off": ...,
             "flight_hours_by_aircraft": {"A320": 1.5, "ATR72": "00:45"},
             "flight_on": ..., "flight_off": ..., "remarks": "DAY OFF"}
"""

import math
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from daily_aggregator import (
    Attribution,
    attribute_to_start_date,
    flight_hours_by_type,
    get_attribution,
)
from duration_codec import (
    MINUTES_PER_HOUR,
    Invalid,
    classify,
    decode,
    minutes_of_day,
    parse_clock_time,
)
from ftl_config import FALSE_WORDS, FTL_STANDBY_CREDIT, FTL_STRICT_OVERLAP, TRUE_WORDS
from ftl_errors import FTLError, InvalidRecord
from limit_evaluator import LimitTable, load_limit_table
from metrics_projection import FTLMetrics, MonthlyReport, build_series, project, project_month
from records import (
    MINUTES_PER_DAY,
    AircraftRegistry,
    AircraftType,
    DailyTotals,
    DutyEntry,
    DutyKind,
    FlightHourEntry,
)
from rolling_window import DailySeries, month_bounds

logger = logging.getLogger(__name__)

# Aircraft type id used when only legacy flight on/off times are logged
UNSPECIFIED_AIRCRAFT = "UNSPECIFIED"

DAY_OFF_REMARK = "DAY OFF"


# =========================================================
# Field Parsing
# =========================================================

def parse_record_date(value: Any) -> date:
    """
    Parse a record date from a date, datetime or ISO string.

    Raises:
        InvalidRecord: If the value is missing or not an ISO date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise InvalidRecord("date is required")
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise InvalidRecord(f"date must be YYYY-MM-DD, got {value!r}")


def parse_hours(value: Any) -> float:
    """
    Decimal hours from a number or duration text.

    Text goes through the duration codec, so "01:30", "1.5" and "2" are
    all accepted; malformed text raises ParseFailure.

    Raises:
        InvalidRecord: If a numeric value is negative or not finite
        ParseFailure: If text cannot be decoded
    """
    if isinstance(value, bool):
        raise InvalidRecord(f"hours must be a number or duration text, got {value!r}")
    if isinstance(value, (int, float)):
        hours = float(value)
        if not math.isfinite(hours) or hours < 0:
            raise InvalidRecord(f"hours must be a non-negative number, got {value!r}")
        return hours
    return decode(value)


def parse_flag(value: Any, name: str, default: bool = False) -> bool:
    """
    Boolean option from JSON true/false, 0/1 or text such as "yes"/"off".

    None (a missing or null option) gives the default.

    Raises:
        InvalidRecord: For anything else, including "maybe" or 2
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_WORDS:
            return True
        if text in FALSE_WORDS:
            return False
    raise InvalidRecord(f"{name} must be true or false, got {value!r}")


def block_hours(start: Any, end: Any) -> float:
    """Hours between two clock times, rolling over midnight when end < start."""
    start_min = minutes_of_day(parse_clock_time(start))
    end_min = minutes_of_day(parse_clock_time(end))
    diff = end_min - start_min
    if diff < 0:
        diff += MINUTES_PER_DAY
    return diff / MINUTES_PER_HOUR


def _has_value(value: Any) -> bool:
    return value is not None and not (isinstance(value, str) and not value.strip())


# =========================================================
# Record Conversion
# =========================================================

def duty_entry_from_dict(record: Dict[str, Any], staff_id: str = "") -> DutyEntry:
    """
    Build a DutyEntry from a raw duty record.

    Raises:
        InvalidRecord: On missing date, unknown kind or zero-length duty
        ParseFailure: If a start or end time is malformed
    """
    return DutyEntry(
        duty_date=parse_record_date(record.get("date")),
        duty_start=parse_clock_time(record.get("duty_start")),
        duty_end=parse_clock_time(record.get("duty_end")),
        kind=DutyKind.parse(record.get("kind")),
        staff_id=str(record.get("staff_id") or staff_id),
    )


def flight_entry_from_dict(record: Dict[str, Any], staff_id: str = "") -> FlightHourEntry:
    """Build a FlightHourEntry from a raw per-aircraft-type record."""
    if not _has_value(record.get("hours")):
        raise InvalidRecord("hours is required")
    return FlightHourEntry(
        flight_date=parse_record_date(record.get("date")),
        aircraft_type_id=str(record.get("aircraft_type_id") or UNSPECIFIED_AIRCRAFT),
        hours=parse_hours(record.get("hours")),
        staff_id=str(record.get("staff_id") or staff_id),
    )


def flight_entries_from_mapping(
    flight_date: date,
    hours_by_aircraft: Optional[Dict[str, Any]],
    staff_id: str = "",
) -> List[FlightHourEntry]:
    """
    Expand a {aircraft_type_id: hours} mapping into FlightHourEntry values.

    Empty values are skipped and zero-hour entries dropped.
    """
    entries = []
    for type_id, value in (hours_by_aircraft or {}).items():
        if not _has_value(value):
            continue
        hours = parse_hours(value)
        if hours == 0:
            continue
        entries.append(FlightHourEntry(flight_date, str(type_id), hours, staff_id))
    return entries


def entries_from_log_record(
    record: Dict[str, Any],
    staff_id: str = "",
) -> Tuple[List[DutyEntry], List[FlightHourEntry]]:
    """
    Expand one daily duty-log record into duty and flight-hour entries.

    - duty_start/duty_end become a duty entry of the record's kind
    - standby_on/standby_off become a standby entry
    - flight_hours_by_aircraft becomes one flight entry per type
    - only when flight_hours_by_aircraft is absent, flight_on/flight_off
      is credited as UNSPECIFIED block time; a mapping that is empty or
      all zero means no flying that day

    A "DAY OFF" record with no times yields nothing.
    """
    staff_id = str(record.get("staff_id") or staff_id)
    day = parse_record_date(record.get("date"))

    duties: List[DutyEntry] = []
    if _has_value(record.get("duty_start")) or _has_value(record.get("duty_end")):
        duties.append(DutyEntry(
            duty_date=day,
            duty_start=parse_clock_time(record.get("duty_start")),
            duty_end=parse_clock_time(record.get("duty_end")),
            kind=DutyKind.parse(record.get("kind")),
            staff_id=staff_id,
        ))
    if _has_value(record.get("standby_on")) or _has_value(record.get("standby_off")):
        duties.append(DutyEntry(
            duty_date=day,
            duty_start=parse_clock_time(record.get("standby_on")),
            duty_end=parse_clock_time(record.get("standby_off")),
            kind=DutyKind.STANDBY,
            staff_id=staff_id,
        ))

    by_aircraft = record.get("flight_hours_by_aircraft")
    flights = flight_entries_from_mapping(day, by_aircraft, staff_id)

    # Legacy support: block time from flight on/off
    legacy_times = _has_value(record.get("flight_on")) or _has_value(record.get("flight_off"))
    if by_aircraft is None and legacy_times:
        hours = block_hours(record.get("flight_on"), record.get("flight_off"))
        if hours > 0:
            flights.append(FlightHourEntry(day, UNSPECIFIED_AIRCRAFT, hours, staff_id))

    if not duties and not flights and record.get("remarks") == DAY_OFF_REMARK:
        logger.debug(f"Day off on {day.isoformat()} for {staff_id or 'unknown staff'}")

    return duties, flights


# =========================================================
# Data Validation
# =========================================================

def validate_duty_record(record: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate a raw duty record.

    Args:
        record: Duty data to validate

    Returns:
        Tuple of (is_valid, list of errors)
    """
    errors = []

    try:
        parse_record_date(record.get("date"))
    except InvalidRecord as e:
        errors.append(str(e))

    times = {}
    for key in ("duty_start", "duty_end"):
        try:
            times[key] = parse_clock_time(record.get(key))
        except FTLError:
            errors.append(f"{key} must be HH:MM (00:00-23:59)")

    if len(times) == 2 and times["duty_start"] == times["duty_end"]:
        errors.append("duty_start and duty_end must differ")

    try:
        DutyKind.parse(record.get("kind"))
    except InvalidRecord as e:
        errors.append(str(e))

    return (len(errors) == 0, errors)


def validate_flight_record(record: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate a raw flight-hour record.

    Args:
        record: Flight-hour data to validate

    Returns:
        Tuple of (is_valid, list of errors)
    """
    errors = []

    try:
        parse_record_date(record.get("date"))
    except InvalidRecord as e:
        errors.append(str(e))

    if not record.get("aircraft_type_id"):
        errors.append("aircraft_type_id is required")

    hours = record.get("hours")
    if not _has_value(hours):
        errors.append("hours is required")
    elif isinstance(hours, str):
        form = classify(hours)
        if isinstance(form, Invalid):
            errors.append(f"hours: {form.reason}")
    else:
        try:
            parse_hours(hours)
        except InvalidRecord as e:
            errors.append(str(e))

    return (len(errors) == 0, errors)


# =========================================================
# Ranking
# =========================================================

def get_top_high_intensity_staff(
    metrics_list: Iterable[FTLMetrics],
    limit_name: str,
    limit: int = 20,
) -> List[FTLMetrics]:
    """
    Staff with the highest percentage of one limit.

    Args:
        metrics_list: FTLMetrics snapshots, one per staff member
        limit_name: Limit to rank by (e.g. "flight_time_28d")
        limit: Number of snapshots to return

    Returns:
        Top N snapshots, highest percentage first
    """
    ranked = sorted(
        (m for m in metrics_list if limit_name in m),
        key=lambda m: m[limit_name].percentage,
        reverse=True,
    )
    return ranked[:limit]


# =========================================================
# Main Data Processor Class
# =========================================================

@dataclass
class StaffRecords:
    """Parsed records for one staff member."""
    staff_id: str
    duty_entries: List[DutyEntry] = field(default_factory=list)
    flight_entries: List[FlightHourEntry] = field(default_factory=list)


class DataProcessor:
    """
    Facade over the FTL pipeline.

    Holds the limit table, aircraft registry and aggregation options so
    callers only pass records and an anchor date.
    """

    def __init__(
        self,
        limit_table: Optional[LimitTable] = None,
        registry: Optional[AircraftRegistry] = None,
        attribution: Attribution = attribute_to_start_date,
        strict: bool = FTL_STRICT_OVERLAP,
        standby_credit: float = FTL_STANDBY_CREDIT,
    ):
        """
        Initialize data processor.

        Args:
            limit_table: Limit table; loaded from config when omitted
            registry: Aircraft type registry for display names
            attribution: Overnight duty attribution policy
            strict: Reject overlapping duty entries
            standby_credit: Fraction of standby time counted as duty
        """
        self.limit_table = limit_table or load_limit_table()
        self.registry = registry or AircraftRegistry()
        self.attribution = attribution
        self.strict = strict
        self.standby_credit = standby_credit

    @classmethod
    def from_options(cls, options: Optional[Dict[str, Any]] = None, **kwargs) -> "DataProcessor":
        """Build a processor from request options (attribution, strict, aircraft_types)."""
        options = options or {}
        try:
            registry = AircraftRegistry(
                AircraftType(
                    type_id=str(item["type_id"]),
                    name=str(item.get("name") or item["type_id"]),
                    retired=parse_flag(item.get("retired"), "retired"),
                )
                for item in options.get("aircraft_types") or []
            )
        except (KeyError, TypeError, AttributeError):
            raise InvalidRecord("aircraft_types entries need a type_id")
        return cls(
            registry=registry,
            attribution=get_attribution(options.get("attribution")),
            strict=parse_flag(options.get("strict"), "strict", default=FTL_STRICT_OVERLAP),
            **kwargs,
        )

    def parse_records(self, payload: Dict[str, Any]) -> StaffRecords:
        """
        Parse one staff member's records from a request payload.

        Keys: staff_id, duty_entries, flight_entries, log_records.
        Every key but staff_id is optional.
        """
        staff_id = str(payload.get("staff_id") or "")
        records = StaffRecords(staff_id=staff_id)

        for item in payload.get("duty_entries") or []:
            records.duty_entries.append(duty_entry_from_dict(item, staff_id))
        for item in payload.get("flight_entries") or []:
            records.flight_entries.append(flight_entry_from_dict(item, staff_id))
        for item in payload.get("log_records") or []:
            duties, flights = entries_from_log_record(item, staff_id)
            records.duty_entries.extend(duties)
            records.flight_entries.extend(flights)

        logger.debug(
            f"Parsed {len(records.duty_entries)} duty / {len(records.flight_entries)} "
            f"flight entries for {staff_id or 'unknown staff'}"
        )
        return records

    def daily_series(self, records: StaffRecords) -> DailySeries:
        return build_series(
            records.duty_entries,
            records.flight_entries,
            attribution=self.attribution,
            strict=self.strict,
            standby_credit=self.standby_credit,
        )

    def history_series(
        self,
        records: StaffRecords,
        first_anchor: date,
        last_anchor: Optional[date] = None,
    ) -> DailySeries:
        """
        Daily series holding only the dates anchors in [first_anchor, last_anchor]
        can reach.

        That is the longest limit window before first_anchor through the
        end of last_anchor's calendar month (for the month totals). Entries
        outside it are dropped before aggregation; the day before the cut
        is kept so an overnight duty split at midnight still lands.
        """
        last_anchor = last_anchor or first_anchor
        start = min(self.limit_table.history_start(first_anchor), month_bounds(first_anchor)[0])
        end = month_bounds(last_anchor)[1]
        lead_in = start if start == date.min else start - timedelta(days=1)

        duty_entries = [e for e in records.duty_entries if lead_in <= e.duty_date <= end]
        flight_entries = [f for f in records.flight_entries if start <= f.flight_date <= end]
        dropped = (
            len(records.duty_entries) - len(duty_entries)
            + len(records.flight_entries) - len(flight_entries)
        )
        if dropped:
            logger.debug(
                f"Dropped {dropped} entries outside {start.isoformat()}..{end.isoformat()} "
                f"for {records.staff_id or 'unknown staff'}"
            )

        trimmed = StaffRecords(records.staff_id, duty_entries, flight_entries)
        return self.daily_series(trimmed).between(start, end)

    def daily_totals(self, records: StaffRecords, day: date) -> DailyTotals:
        """Raw DailyTotals for one date ("today's hours")."""
        return self.daily_series(records).totals_for(day)

    def metrics(self, records: StaffRecords, anchor_date: date) -> FTLMetrics:
        series = self.history_series(records, anchor_date)
        return project(records.staff_id, anchor_date, series, self.limit_table)

    def month(self, records: StaffRecords, year: int, month: int) -> MonthlyReport:
        first, last = month_bounds(date(year, month, 1))
        series = self.history_series(records, first, last)
        return project_month(records.staff_id, year, month, series, self.limit_table)

    def aircraft_breakdown(self, records: StaffRecords, start: date, end: date) -> Dict[str, float]:
        """Flight hours per aircraft type display name over [start, end]."""
        in_range = [f for f in records.flight_entries if start <= f.flight_date <= end]
        return flight_hours_by_type(in_range, self.registry)
