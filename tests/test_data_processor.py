"""
Unit Tests - Data Processor

Tests for record conversion, validation and the DataProcessor facade.
"""

import pytest
from datetime import date, datetime, time, timedelta
from unittest.mock import patch

from data_processor import (
    UNSPECIFIED_AIRCRAFT,
    DataProcessor,
    StaffRecords,
    block_hours,
    duty_entry_from_dict,
    entries_from_log_record,
    flight_entries_from_mapping,
    flight_entry_from_dict,
    get_top_high_intensity_staff,
    parse_hours,
    parse_record_date,
    validate_duty_record,
    validate_flight_record,
)
from daily_aggregator import split_at_midnight
from ftl_errors import InvalidRecord, OverlapViolation, ParseFailure
from limit_evaluator import Tier
from metrics_projection import project, project_month
from records import DailyTotals, DutyKind


class TestParseRecordDate:
    """Tests for parse_record_date function."""

    def test_iso_string(self):
        """Test parsing ISO date strings."""
        assert parse_record_date("2026-03-01") == date(2026, 3, 1)
        assert parse_record_date(" 2026-03-01T22:00:00 ") == date(2026, 3, 1)

    def test_date_and_datetime(self):
        """Test date and datetime values pass through."""
        assert parse_record_date(date(2026, 3, 1)) == date(2026, 3, 1)
        assert parse_record_date(datetime(2026, 3, 1, 22, 0)) == date(2026, 3, 1)

    def test_missing_or_malformed(self):
        """Test missing and malformed dates raise InvalidRecord."""
        for value in (None, "", "01/03/2026"):
            with pytest.raises(InvalidRecord):
                parse_record_date(value)


class TestParseHours:
    """Tests for parse_hours function."""

    def test_numbers(self):
        """Test numeric hours."""
        assert parse_hours(1.5) == 1.5
        assert parse_hours(2) == 2.0
        assert parse_hours(0) == 0.0

    def test_text(self):
        """Test duration text in every accepted form."""
        assert parse_hours("01:30") == 1.5
        assert parse_hours("1.5") == 1.5
        assert parse_hours(" 2 ") == 2.0

    def test_malformed_text_is_not_zero(self):
        """Test malformed text raises instead of counting as zero."""
        for value in ("abc", "01:75", "-1.0", ""):
            with pytest.raises(ParseFailure):
                parse_hours(value)

    def test_bad_numbers(self):
        """Test negative, non-finite and boolean hours are rejected."""
        for value in (-0.5, float("nan"), float("inf"), True):
            with pytest.raises(InvalidRecord):
                parse_hours(value)


class TestBlockHours:
    """Tests for block_hours function."""

    def test_same_day(self):
        assert block_hours("08:00", "09:30") == 1.5

    def test_rolls_over_midnight(self):
        assert block_hours("23:00", "01:15") == 2.25

    def test_malformed(self):
        with pytest.raises(ParseFailure):
            block_hours("25:00", "01:00")


class TestRecordConversion:
    """Tests for duty and flight record conversion."""

    def test_duty_entry(self):
        """Test a complete duty record."""
        entry = duty_entry_from_dict(
            {"date": "2026-03-01", "duty_start": "22:00", "duty_end": "06:00", "kind": "standby"},
            staff_id="P001",
        )

        assert entry.duty_date == date(2026, 3, 1)
        assert entry.duty_start == time(22, 0)
        assert entry.kind is DutyKind.STANDBY
        assert entry.staff_id == "P001"
        assert entry.duration_hours == 8.0

    def test_duty_kind_defaults_to_flight(self):
        entry = duty_entry_from_dict({"date": "2026-03-01", "duty_start": "08:00", "duty_end": "10:00"})

        assert entry.kind is DutyKind.FLIGHT_DUTY

    def test_duty_record_staff_id_wins(self):
        entry = duty_entry_from_dict(
            {"date": "2026-03-01", "duty_start": "08:00", "duty_end": "10:00", "staff_id": "P002"},
            staff_id="P001",
        )

        assert entry.staff_id == "P002"

    def test_zero_length_duty(self):
        with pytest.raises(InvalidRecord):
            duty_entry_from_dict({"date": "2026-03-01", "duty_start": "08:00", "duty_end": "08:00"})

    def test_bad_duty_time(self):
        with pytest.raises(ParseFailure):
            duty_entry_from_dict({"date": "2026-03-01", "duty_start": "8am", "duty_end": "10:00"})

    def test_flight_entry(self):
        """Test a per-aircraft flight-hour record."""
        entry = flight_entry_from_dict({"date": "2026-03-01", "aircraft_type_id": "A320", "hours": "01:30"})

        assert entry.aircraft_type_id == "A320"
        assert entry.hours == 1.5

    def test_flight_entry_without_type(self):
        entry = flight_entry_from_dict({"date": "2026-03-01", "hours": 2})

        assert entry.aircraft_type_id == UNSPECIFIED_AIRCRAFT

    def test_flight_entry_without_hours(self):
        with pytest.raises(InvalidRecord):
            flight_entry_from_dict({"date": "2026-03-01", "aircraft_type_id": "A320"})

    def test_flight_mapping(self):
        """Test empty and zero values in a per-type mapping are dropped."""
        entries = flight_entries_from_mapping(
            date(2026, 3, 1),
            {"A320": 1.5, "ATR72": "00:45", "B787": "", "A321": 0},
            staff_id="P001",
        )

        assert [(e.aircraft_type_id, e.hours) for e in entries] == [("A320", 1.5), ("ATR72", 0.75)]
        assert all(e.staff_id == "P001" for e in entries)


class TestLogRecords:
    """Tests for entries_from_log_record function."""

    def test_full_log_record(self):
        """Test duty, standby and per-type flight hours from one record."""
        duties, flights = entries_from_log_record({
            "date": "2026-03-01",
            "duty_start": "06:00",
            "duty_end": "14:00",
            "standby_on": "15:00",
            "standby_off": "19:00",
            "flight_hours_by_aircraft": {"A320": "01:30", "ATR72": 2.0},
            "flight_on": "07:00",
            "flight_off": "12:00",
        }, staff_id="P001")

        assert [d.kind for d in duties] == [DutyKind.FLIGHT_DUTY, DutyKind.STANDBY]
        assert sum(f.hours for f in flights) == 3.5
        assert UNSPECIFIED_AIRCRAFT not in {f.aircraft_type_id for f in flights}

    def test_legacy_flight_on_off(self):
        """Test block time is used only without per-type hours."""
        _, flights = entries_from_log_record({
            "date": "2026-03-01", "flight_on": "23:00", "flight_off": "01:30",
        })

        assert len(flights) == 1
        assert flights[0].aircraft_type_id == UNSPECIFIED_AIRCRAFT
        assert flights[0].hours == 2.5

    def test_per_type_mapping_suppresses_block_time(self):
        """An empty or all-zero per-type mapping means no flying, whatever on/off says."""
        for by_aircraft in ({"A320": 0}, {"A320": "00:00", "ATR72": ""}, {}):
            _, flights = entries_from_log_record({
                "date": "2026-03-01",
                "flight_hours_by_aircraft": by_aircraft,
                "flight_on": "07:00",
                "flight_off": "12:00",
            })

            assert flights == []

    def test_day_off(self):
        duties, flights = entries_from_log_record({"date": "2026-03-01", "remarks": "DAY OFF"})

        assert duties == []
        assert flights == []

    def test_half_filled_duty_times(self):
        with pytest.raises(ParseFailure):
            entries_from_log_record({"date": "2026-03-01", "duty_start": "06:00"})


class TestValidation:
    """Tests for record validation."""

    def test_valid_duty_record(self):
        is_valid, errors = validate_duty_record(
            {"date": "2026-03-01", "duty_start": "22:00", "duty_end": "06:00"}
        )

        assert is_valid is True
        assert errors == []

    def test_invalid_duty_record(self):
        """Test every problem is reported, not just the first."""
        is_valid, errors = validate_duty_record(
            {"date": "", "duty_start": "24:00", "duty_end": "06:00", "kind": "nap"}
        )

        assert is_valid is False
        assert "date is required" in errors
        assert "duty_start must be HH:MM (00:00-23:59)" in errors
        assert any("Unknown duty kind" in e for e in errors)

    def test_zero_length_duty_record(self):
        is_valid, errors = validate_duty_record(
            {"date": "2026-03-01", "duty_start": "08:00", "duty_end": "08:00"}
        )

        assert is_valid is False
        assert "duty_start and duty_end must differ" in errors

    def test_valid_flight_record(self):
        is_valid, errors = validate_flight_record(
            {"date": "2026-03-01", "aircraft_type_id": "A320", "hours": "01:30"}
        )

        assert is_valid is True
        assert errors == []

    def test_invalid_flight_record(self):
        is_valid, errors = validate_flight_record({"date": "2026-03-01", "hours": "01:75"})

        assert is_valid is False
        assert "aircraft_type_id is required" in errors
        assert "hours: minutes must be 0-59, got 75" in errors

    def test_negative_flight_hours(self):
        is_valid, errors = validate_flight_record(
            {"date": "2026-03-01", "aircraft_type_id": "A320", "hours": -1}
        )

        assert is_valid is False
        assert len(errors) == 1


class TestRanking:
    """Tests for get_top_high_intensity_staff function."""

    def test_highest_percentage_first(self, anchor, limit_table):
        snapshots = [
            project(staff_id, anchor, {anchor: DailyTotals(flight_hours=hours)}, limit_table)
            for staff_id, hours in (("P001", 10.0), ("P002", 90.0), ("P003", 50.0))
        ]

        top = get_top_high_intensity_staff(snapshots, "flight_time_28d", limit=2)

        assert [m.staff_id for m in top] == ["P002", "P003"]

    def test_unknown_limit(self, anchor, limit_table):
        snapshots = [project("P001", anchor, {}, limit_table)]

        assert get_top_high_intensity_staff(snapshots, "duty_time_365d") == []


class TestDataProcessor:
    """Tests for DataProcessor class."""

    @pytest.fixture
    def payload(self):
        return {
            "staff_id": "P001",
            "duty_entries": [
                {"date": "2026-02-27", "duty_start": "22:00", "duty_end": "06:00"},
            ],
            "flight_entries": [
                {"date": "2026-02-28", "aircraft_type_id": "A320", "hours": "01:30"},
            ],
            "log_records": [
                {"date": "2026-02-28", "duty_start": "10:00", "duty_end": "14:00",
                 "flight_hours_by_aircraft": {"ATR72": "02:15"}},
            ],
        }

    def test_default_limit_table(self):
        """Test processor loads the configured limit table."""
        with patch("limit_evaluator.FTL_LIMITS_FILE", ""):
            processor = DataProcessor()

        assert "duty_time_28d" in processor.limit_table.names

    def test_parse_records(self, payload, limit_table):
        records = DataProcessor(limit_table).parse_records(payload)

        assert isinstance(records, StaffRecords)
        assert records.staff_id == "P001"
        assert len(records.duty_entries) == 2
        assert len(records.flight_entries) == 2
        assert all(e.staff_id == "P001" for e in records.duty_entries)

    def test_daily_totals(self, payload, limit_table, anchor):
        processor = DataProcessor(limit_table)
        records = processor.parse_records(payload)

        assert processor.daily_totals(records, anchor) == DailyTotals(duty_hours=4.0, flight_hours=3.75)
        assert processor.daily_totals(records, date(2026, 2, 27)).duty_hours == 8.0

    def test_split_attribution(self, payload, limit_table, anchor):
        processor = DataProcessor(limit_table, attribution=split_at_midnight)
        records = processor.parse_records(payload)

        assert processor.daily_totals(records, anchor).duty_hours == 10.0

    def test_metrics(self, payload, limit_table, anchor):
        processor = DataProcessor(limit_table)

        metrics = processor.metrics(processor.parse_records(payload), anchor)

        assert metrics.staff_id == "P001"
        assert metrics["duty_time_7d"].total == 12.0
        assert metrics["flight_time_28d"].total == 3.75
        assert metrics.worst_tier is Tier.NOMINAL

    def test_month(self, payload, limit_table):
        processor = DataProcessor(limit_table)

        report = processor.month(processor.parse_records(payload), 2026, 2)

        assert len(report.days) == 28
        assert report.month_duty_hours == 12.0

    def test_aircraft_breakdown(self, payload, limit_table, anchor):
        processor = DataProcessor.from_options(
            {"aircraft_types": [{"type_id": "A320", "name": "Airbus A320"}]},
            limit_table=limit_table,
        )
        records = processor.parse_records(payload)

        breakdown = processor.aircraft_breakdown(records, anchor, anchor)

        assert breakdown == {"Airbus A320": 1.5, "ATR72": 2.25}

    def test_from_options_strict(self, limit_table, anchor):
        processor = DataProcessor.from_options({"strict": True}, limit_table=limit_table)
        records = processor.parse_records({
            "staff_id": "P001",
            "duty_entries": [
                {"date": "2026-02-28", "duty_start": "08:00", "duty_end": "12:00"},
                {"date": "2026-02-28", "duty_start": "11:00", "duty_end": "13:00"},
            ],
        })

        with pytest.raises(OverlapViolation):
            processor.metrics(records, anchor)

    def test_from_options_rejects_bad_input(self, limit_table):
        with pytest.raises(InvalidRecord):
            DataProcessor.from_options({"attribution": "end_date"}, limit_table=limit_table)
        with pytest.raises(InvalidRecord):
            DataProcessor.from_options({"aircraft_types": [{"name": "no id"}]}, limit_table=limit_table)
        with pytest.raises(InvalidRecord):
            DataProcessor.from_options({"strict": "maybe"}, limit_table=limit_table)

    def test_from_options_text_flags(self, limit_table):
        lenient = DataProcessor.from_options({"strict": "false"}, limit_table=limit_table)
        strict = DataProcessor.from_options({"strict": "TRUE"}, limit_table=limit_table)
        unset = DataProcessor.from_options({"strict": None}, limit_table=limit_table)
        registry = DataProcessor.from_options(
            {"aircraft_types": [{"type_id": "B737", "retired": "no"}]},
            limit_table=limit_table,
        ).registry

        assert lenient.strict is False
        assert strict.strict is True
        assert unset.strict is False
        assert registry.get("B737").retired is False

    def test_history_series_keeps_reachable_dates(self, limit_table, anchor):
        processor = DataProcessor(limit_table)
        records = processor.parse_records({
            "staff_id": "P001",
            "flight_entries": [
                {"date": (anchor - timedelta(days=i)).isoformat(), "aircraft_type_id": "A320", "hours": 1.0}
                for i in range(-5, 100)
            ],
        })

        series = processor.history_series(records, anchor)

        assert series.first_date == date(2026, 2, 1)
        assert series.last_date == anchor
        assert len(series) == 28

    def test_truncation_leaves_metrics_unchanged(self, limit_table, anchor):
        processor = DataProcessor(limit_table)
        records = processor.parse_records({
            "staff_id": "P001",
            "duty_entries": [
                {"date": (anchor - timedelta(days=i)).isoformat(), "duty_start": "06:00", "duty_end": "14:00"}
                for i in range(400)
            ],
            "flight_entries": [
                {"date": (anchor - timedelta(days=i)).isoformat(), "aircraft_type_id": "A320", "hours": 2.0}
                for i in range(400)
            ],
        })
        full = processor.daily_series(records)

        assert processor.metrics(records, anchor) == project("P001", anchor, full, limit_table)
        assert processor.month(records, 2026, 2) == project_month("P001", 2026, 2, full, limit_table)

    def test_split_duty_before_cut_still_counted(self, limit_table, anchor):
        processor = DataProcessor(limit_table, attribution=split_at_midnight)
        records = processor.parse_records({
            "staff_id": "P001",
            "duty_entries": [{"date": "2026-01-31", "duty_start": "22:00", "duty_end": "06:00"}],
        })

        metrics = processor.metrics(records, anchor)

        assert metrics.month_duty_hours == 6.0
