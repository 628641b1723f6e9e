"""
Metrics Projection

Assembles rolling-window totals and limit evaluations into the FTLMetrics
snapshot consumed by duty dashboards and print/export views.

project() is deterministic and side-effect free: identical inputs give
identical output, so a host may memoize it (see cache.py). The engine
itself does not cache.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from daily_aggregator import Attribution, aggregate_by_date, attribute_to_start_date
from ftl_config import FTL_STANDBY_CREDIT, FTL_STRICT_OVERLAP
from limit_evaluator import LimitTable, Tier, evaluate, worst_tier
from records import DailyTotals, DutyEntry, FlightHourEntry, Metric
from rolling_window import DailySeries, as_series, month_bounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LimitMetric:
    """One configured limit evaluated at an anchor date."""
    name: str
    metric: Metric
    window_days: int
    total: float
    limit: float
    percentage: float
    tier: Tier
    label: str = ""

    @property
    def progress(self) -> float:
        """Percentage clamped to [0, 100] for progress bars."""
        return min(max(self.percentage, 0.0), 100.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "metric": self.metric.value,
            "window_days": self.window_days,
            "total": self.total,
            "limit": self.limit,
            "percentage": self.percentage,
            "progress": self.progress,
            "tier": self.tier.value,
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LimitMetric":
        return cls(
            name=data["name"],
            metric=Metric(data["metric"]),
            window_days=int(data["window_days"]),
            total=float(data["total"]),
            limit=float(data["limit"]),
            percentage=float(data["percentage"]),
            tier=Tier(data["tier"]),
            label=data.get("label", ""),
        )


@dataclass(frozen=True)
class FTLMetrics:
    """
    FTL snapshot for one staff member at one anchor date.

    Built fresh on every query and never mutated. `limits` keeps the
    limit table's order.
    """
    staff_id: str
    anchor_date: date
    limits: Tuple[LimitMetric, ...]
    month_duty_hours: float
    month_flight_hours: float
    day_totals: DailyTotals

    def __getitem__(self, name: str) -> LimitMetric:
        for item in self.limits:
            if item.name == name:
                return item
        raise KeyError(name)

    def __contains__(self, name: str) -> bool:
        return any(item.name == name for item in self.limits)

    @property
    def by_name(self) -> Dict[str, LimitMetric]:
        return {item.name: item for item in self.limits}

    @property
    def worst_tier(self) -> Tier:
        return worst_tier(item.tier for item in self.limits)

    def exceeded(self) -> List[LimitMetric]:
        return [item for item in self.limits if item.tier is Tier.EXCEEDED]

    def violations(self) -> List[str]:
        """Human-readable message for every exceeded limit."""
        messages = []
        for item in self.exceeded():
            kind = "duty time" if item.metric is Metric.DUTY else "flight time"
            messages.append(f"Exceeded {item.limit:g}h {kind} in {item.window_days} days.")
        return messages

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staff_id": self.staff_id,
            "anchor_date": self.anchor_date.isoformat(),
            "limits": {item.name: item.to_dict() for item in self.limits},
            "month_duty_hours": self.month_duty_hours,
            "month_flight_hours": self.month_flight_hours,
            "day_totals": self.day_totals.to_dict(),
            "worst_tier": self.worst_tier.value,
            "violations": self.violations(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FTLMetrics":
        day = data.get("day_totals") or {}
        return cls(
            staff_id=data["staff_id"],
            anchor_date=date.fromisoformat(data["anchor_date"]),
            limits=tuple(LimitMetric.from_dict(item) for item in data["limits"].values()),
            month_duty_hours=float(data["month_duty_hours"]),
            month_flight_hours=float(data["month_flight_hours"]),
            day_totals=DailyTotals(
                duty_hours=float(day.get("duty_hours", 0.0)),
                flight_hours=float(day.get("flight_hours", 0.0)),
            ),
        )


# =====================================================
# Projection
# =====================================================

def build_series(
    duty_entries: Iterable[DutyEntry],
    flight_entries: Iterable[FlightHourEntry],
    attribution: Attribution = attribute_to_start_date,
    strict: bool = FTL_STRICT_OVERLAP,
    standby_credit: float = FTL_STANDBY_CREDIT,
) -> DailySeries:
    """Aggregate raw records into the daily series the window engine reads."""
    return DailySeries(aggregate_by_date(
        duty_entries,
        flight_entries,
        attribution=attribution,
        strict=strict,
        standby_credit=standby_credit,
    ))


def project(
    staff_id: str,
    anchor_date: date,
    daily_totals,
    limit_table: LimitTable,
) -> FTLMetrics:
    """
    Evaluate every configured limit for one staff member at one date.

    Args:
        staff_id: Staff member the series belongs to
        anchor_date: Last day of every trailing window
        daily_totals: DailySeries, or a date -> DailyTotals mapping
        limit_table: Configured limits and tier policy

    Returns:
        FTLMetrics snapshot
    """
    series = as_series(daily_totals)

    items = []
    for limit in limit_table:
        total = series.window_total(anchor_date, limit.window_days, limit.metric)
        result = evaluate(total, limit, limit_table.policy)
        items.append(LimitMetric(
            name=limit.name,
            metric=limit.metric,
            window_days=limit.window_days,
            total=total,
            limit=limit.max_hours,
            percentage=result.percentage,
            tier=result.tier,
            label=limit.label or limit.description,
        ))

    logger.debug(f"Projected {len(items)} limits for {staff_id} at {anchor_date.isoformat()}")

    return FTLMetrics(
        staff_id=staff_id,
        anchor_date=anchor_date,
        limits=tuple(items),
        month_duty_hours=series.month_total(anchor_date, Metric.DUTY),
        month_flight_hours=series.month_total(anchor_date, Metric.FLIGHT),
        day_totals=series.totals_for(anchor_date),
    )


# =====================================================
# Month Breakdown
# =====================================================

@dataclass(frozen=True)
class DayRow:
    day: date
    totals: DailyTotals
    metrics: FTLMetrics

    @property
    def is_day_off(self) -> bool:
        return self.totals.duty_hours == 0 and self.totals.flight_hours == 0


@dataclass(frozen=True)
class MonthlyReport:
    """Per-day metrics for one calendar month, as shown on the duty log page."""
    staff_id: str
    year: int
    month: int
    days: Tuple[DayRow, ...]
    month_duty_hours: float
    month_flight_hours: float

    @property
    def end_of_month(self) -> Optional[FTLMetrics]:
        return self.days[-1].metrics if self.days else None

    def violation_days(self) -> List[DayRow]:
        return [row for row in self.days if row.metrics.exceeded()]

    def to_dict(self) -> Dict[str, Any]:
        end = self.end_of_month
        return {
            "staff_id": self.staff_id,
            "year": self.year,
            "month": self.month,
            "month_duty_hours": self.month_duty_hours,
            "month_flight_hours": self.month_flight_hours,
            "end_of_month": end.to_dict() if end else None,
            "days": [
                {
                    "date": row.day.isoformat(),
                    "totals": row.totals.to_dict(),
                    "is_day_off": row.is_day_off,
                    "limits": {item.name: item.to_dict() for item in row.metrics.limits},
                    "violations": row.metrics.violations(),
                }
                for row in self.days
            ],
        }


def project_month(
    staff_id: str,
    year: int,
    month: int,
    daily_totals,
    limit_table: LimitTable,
) -> MonthlyReport:
    """
    Project FTLMetrics for every day of a calendar month.

    Windows anchored early in the month reach back into earlier months,
    so the series should include history up to the longest window.
    """
    series = as_series(daily_totals)
    first, last = month_bounds(date(year, month, 1))

    rows = []
    for offset in range((last - first).days + 1):
        day = first + timedelta(days=offset)
        rows.append(DayRow(
            day=day,
            totals=series.totals_for(day),
            metrics=project(staff_id, day, series, limit_table),
        ))

    return MonthlyReport(
        staff_id=staff_id,
        year=year,
        month=month,
        days=tuple(rows),
        month_duty_hours=series.month_total(first, Metric.DUTY),
        month_flight_hours=series.month_total(first, Metric.FLIGHT),
    )
