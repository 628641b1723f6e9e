"""
Shared fixtures for the FTL engine tests.
"""

import pytest
from datetime import date, time, timedelta

from limit_evaluator import LimitDefinition, LimitTable, TierPolicy
from records import DailyTotals, DutyEntry, DutyKind, FlightHourEntry, Metric


def make_duty(day, start, end, kind=DutyKind.FLIGHT_DUTY, staff_id="P001"):
    """DutyEntry from "HH:MM" strings."""
    sh, sm = (int(p) for p in start.split(":"))
    eh, em = (int(p) for p in end.split(":"))
    return DutyEntry(day, time(sh, sm), time(eh, em), kind, staff_id)


def make_flight(day, hours, aircraft="A320", staff_id="P001"):
    return FlightHourEntry(day, aircraft, hours, staff_id)


def daily_flight_series(end, days, hours=1.0):
    """{date: DailyTotals} with `hours` of flight time on each of `days` days ending at `end`."""
    return {
        end - timedelta(days=i): DailyTotals(flight_hours=hours)
        for i in range(days)
    }


@pytest.fixture
def anchor():
    return date(2026, 2, 28)


@pytest.fixture
def limit_table():
    """Small table: 7-day duty and 28-day flight limits."""
    return LimitTable([
        LimitDefinition("duty_time_7d", Metric.DUTY, 7, 60.0),
        LimitDefinition("flight_time_28d", Metric.FLIGHT, 28, 100.0),
    ], TierPolicy(80.0, 100.0))


@pytest.fixture
def client():
    """Create test client."""
    from api_server import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client
