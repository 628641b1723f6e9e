"""
Rolling Window Engine

Trailing-window and calendar-month sums over a staff member's daily
totals.

The series is preprocessed once into cumulative (prefix) sums keyed by
date, so every window query is two binary searches regardless of the
window length. Dates without a DailyTotals entry count as zero.
"""

import calendar
import logging
from bisect import bisect_left, bisect_right
from datetime import date, timedelta
from typing import Dict, Iterable, List, Mapping, Tuple, Union

from records import ZERO_TOTALS, DailyTotals, Metric

logger = logging.getLogger(__name__)

# Decimal places kept in window sums; strips float noise from prefix subtraction
HOURS_PRECISION = 6

SeriesInput = Union[Mapping[date, DailyTotals], Iterable[Tuple[date, DailyTotals]]]


def _round_hours(value: float) -> float:
    # "+ 0.0" turns -0.0 into 0.0
    return round(value, HOURS_PRECISION) + 0.0


class DailySeries:
    """
    Immutable, date-ordered series of DailyTotals for one staff member.

    Duplicate dates in the input are summed.
    """

    def __init__(self, daily_totals: SeriesInput = ()):
        items = daily_totals.items() if isinstance(daily_totals, Mapping) else daily_totals

        merged: Dict[date, DailyTotals] = {}
        for day, totals in items:
            merged[day] = merged.get(day, ZERO_TOTALS) + totals

        self._dates: List[date] = sorted(merged)
        self._totals: Dict[date, DailyTotals] = {d: merged[d] for d in self._dates}

        # _prefix[metric][i] = sum of the first i days
        self._prefix: Dict[Metric, List[float]] = {}
        for metric in Metric:
            running = 0.0
            cumulative = [0.0]
            for day in self._dates:
                running += self._totals[day].for_metric(metric)
                cumulative.append(running)
            self._prefix[metric] = cumulative

        logger.debug(f"Built daily series: {len(self._dates)} days")

    def __len__(self) -> int:
        return len(self._dates)

    def __iter__(self):
        return iter(self.items())

    def items(self) -> List[Tuple[date, DailyTotals]]:
        return [(d, self._totals[d]) for d in self._dates]

    @property
    def first_date(self):
        return self._dates[0] if self._dates else None

    @property
    def last_date(self):
        return self._dates[-1] if self._dates else None

    def totals_for(self, day: date) -> DailyTotals:
        """DailyTotals for a date; zero when nothing was recorded."""
        return self._totals.get(day, ZERO_TOTALS)

    def cumulative(self, through: date, metric: Metric) -> float:
        """Sum of the metric over every recorded date up to and including `through`."""
        return self._prefix[metric][bisect_right(self._dates, through)]

    def range_total(self, start: date, end: date, metric: Metric) -> float:
        """Sum over the inclusive date range [start, end]."""
        if end < start:
            return 0.0
        prefix = self._prefix[metric]
        total = prefix[bisect_right(self._dates, end)] - prefix[bisect_left(self._dates, start)]
        return _round_hours(total)

    def between(self, start: date, end: date) -> "DailySeries":
        """New series holding only the dates in [start, end]."""
        lo = bisect_left(self._dates, start)
        hi = bisect_right(self._dates, end)
        return DailySeries([(d, self._totals[d]) for d in self._dates[lo:hi]])

    def window_total(self, anchor: date, window_days: int, metric: Metric) -> float:
        """
        Sum over the trailing window [anchor - (window_days - 1), anchor].

        Args:
            anchor: Last date of the window (inclusive)
            window_days: Window length in calendar days (>= 1)
            metric: Metric.DUTY or Metric.FLIGHT

        Returns:
            Window total in decimal hours
        """
        if window_days < 1:
            raise ValueError(f"window_days must be >= 1, got {window_days}")
        return self.range_total(window_start(anchor, window_days), anchor, metric)

    def month_total(self, anchor: date, metric: Metric) -> float:
        """Sum over every date in the anchor's calendar month."""
        first, last = month_bounds(anchor)
        return self.range_total(first, last, metric)

    def month_to_date_total(self, anchor: date, metric: Metric) -> float:
        """Sum from the first of the anchor's month through the anchor."""
        first, _ = month_bounds(anchor)
        return self.range_total(first, anchor, metric)


def month_bounds(anchor: date) -> Tuple[date, date]:
    """First and last date of the anchor's calendar month."""
    last_day = calendar.monthrange(anchor.year, anchor.month)[1]
    return anchor.replace(day=1), anchor.replace(day=last_day)


def window_start(anchor: date, window_days: int) -> date:
    """First date of a trailing window, clamped to date.min for early anchors."""
    back = max(window_days - 1, 0)
    if back >= (anchor - date.min).days:
        return date.min
    return anchor - timedelta(days=back)


def as_series(daily_totals) -> DailySeries:
    if isinstance(daily_totals, DailySeries):
        return daily_totals
    return DailySeries(daily_totals)


def window_total(
    daily_totals: SeriesInput,
    anchor: date,
    window_days: int,
    metric: Metric,
) -> float:
    """One-off window query; build a DailySeries when querying many anchors."""
    return as_series(daily_totals).window_total(anchor, window_days, metric)
