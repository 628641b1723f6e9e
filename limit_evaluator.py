"""
Limit Evaluator

Regulatory limit table and severity tiers.

A LimitDefinition is a ceiling on accumulated duty or flight time over
a trailing window. evaluate() compares a computed total against one
definition and classifies it as nominal / approaching / exceeded.
"""

import os
import json
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ftl_config import FTL_APPROACHING_THRESHOLD, FTL_EXCEEDED_THRESHOLD, FTL_LIMITS_FILE
from ftl_errors import ConfigurationError
from records import Metric
from rolling_window import window_start

logger = logging.getLogger(__name__)


class Tier(Enum):
    NOMINAL = "nominal"
    APPROACHING = "approaching"
    EXCEEDED = "exceeded"


_TIER_RANK = {Tier.NOMINAL: 0, Tier.APPROACHING: 1, Tier.EXCEEDED: 2}


def worst_tier(tiers: Iterable[Tier]) -> Tier:
    """Most severe tier in the iterable (NOMINAL when empty)."""
    return max(tiers, key=_TIER_RANK.__getitem__, default=Tier.NOMINAL)


# =====================================================
# Tier Policy
# =====================================================

@dataclass(frozen=True)
class TierPolicy:
    """Percent-of-limit thresholds separating the three tiers."""
    approaching_pct: float = 80.0
    exceeded_pct: float = 100.0

    def __post_init__(self):
        if self.approaching_pct <= 0 or self.exceeded_pct <= 0:
            raise ConfigurationError("Tier thresholds must be positive")
        if self.approaching_pct > self.exceeded_pct:
            raise ConfigurationError(
                f"Approaching threshold ({self.approaching_pct}%) is above "
                f"exceeded threshold ({self.exceeded_pct}%)"
            )

    def classify(self, percentage: float) -> Tier:
        if percentage >= self.exceeded_pct:
            return Tier.EXCEEDED
        if percentage >= self.approaching_pct:
            return Tier.APPROACHING
        return Tier.NOMINAL


DEFAULT_TIER_POLICY = TierPolicy(FTL_APPROACHING_THRESHOLD, FTL_EXCEEDED_THRESHOLD)


# =====================================================
# Limit Definitions
# =====================================================

@dataclass(frozen=True)
class LimitDefinition:
    """
    A named ceiling on accumulated hours.

    Attributes
    ----------
    name : str
        Key of this limit in FTLMetrics (e.g. "duty_time_28d").
    metric : Metric
        Duty or flight time.
    window_days : int
        Trailing window length in days, anchor day included.
    max_hours : float
        Ceiling in hours. Must be positive.
    approaching_pct, exceeded_pct : float, optional
        Per-limit override of the default tier thresholds.
    """
    name: str
    metric: Metric
    window_days: int
    max_hours: float
    label: str = ""
    approaching_pct: Optional[float] = None
    exceeded_pct: Optional[float] = None

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Limit name is required")
        if not isinstance(self.metric, Metric):
            raise ConfigurationError(f"Limit {self.name}: metric must be duty or flight")
        if isinstance(self.window_days, bool) or not isinstance(self.window_days, int) \
                or self.window_days < 1:
            raise ConfigurationError(
                f"Limit {self.name}: window_days must be a positive integer, got {self.window_days!r}"
            )
        if self.max_hours is None or self.max_hours <= 0:
            raise ConfigurationError(
                f"Limit {self.name}: max_hours must be positive, got {self.max_hours!r}"
            )

    @property
    def description(self) -> str:
        kind = "duty time" if self.metric is Metric.DUTY else "flight time"
        return f"{self.max_hours:g}h {kind} in {self.window_days} days"

    def policy(self, default: TierPolicy = DEFAULT_TIER_POLICY) -> TierPolicy:
        """Tier policy for this limit, applying any per-limit override."""
        if self.approaching_pct is None and self.exceeded_pct is None:
            return default
        return TierPolicy(
            approaching_pct=self.approaching_pct if self.approaching_pct is not None else default.approaching_pct,
            exceeded_pct=self.exceeded_pct if self.exceeded_pct is not None else default.exceeded_pct,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "metric": self.metric.value,
            "window_days": self.window_days,
            "max_hours": self.max_hours,
            "label": self.label or self.description,
        }
        if self.approaching_pct is not None:
            data["approaching_pct"] = self.approaching_pct
        if self.exceeded_pct is not None:
            data["exceeded_pct"] = self.exceeded_pct
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LimitDefinition":
        name = data.get("name", "")
        try:
            metric = Metric(str(data.get("metric", "")).lower())
        except ValueError:
            raise ConfigurationError(f"Limit {name}: unknown metric {data.get('metric')!r}")
        try:
            return cls(
                name=name,
                metric=metric,
                window_days=int(data["window_days"]),
                max_hours=float(data["max_hours"]),
                label=data.get("label", ""),
                approaching_pct=_optional_float(data.get("approaching_pct")),
                exceeded_pct=_optional_float(data.get("exceeded_pct")),
            )
        except KeyError as e:
            raise ConfigurationError(f"Limit {name}: missing field {e.args[0]}")
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Limit {name}: {e}")


def _optional_float(value) -> Optional[float]:
    return None if value is None else float(value)


# =====================================================
# Limit Table
# =====================================================

class LimitTable:
    """Immutable set of limit definitions plus the default tier policy."""

    def __init__(
        self,
        limits: Iterable[LimitDefinition],
        policy: TierPolicy = DEFAULT_TIER_POLICY,
    ):
        self._limits: Tuple[LimitDefinition, ...] = tuple(limits)
        self.policy = policy

        seen = set()
        for limit in self._limits:
            if limit.name in seen:
                raise ConfigurationError(f"Duplicate limit name: {limit.name}")
            seen.add(limit.name)
        # Each limit's override must also form a valid policy
        for limit in self._limits:
            limit.policy(policy)

    def __iter__(self) -> Iterator[LimitDefinition]:
        return iter(self._limits)

    def __len__(self) -> int:
        return len(self._limits)

    @property
    def names(self) -> List[str]:
        return [limit.name for limit in self._limits]

    @property
    def max_window_days(self) -> int:
        return max((limit.window_days for limit in self._limits), default=0)

    def history_start(self, anchor: date) -> date:
        """Earliest date any limit window ending at `anchor` can reach."""
        return window_start(anchor, self.max_window_days)

    def get(self, name: str) -> Optional[LimitDefinition]:
        for limit in self._limits:
            if limit.name == name:
                return limit
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thresholds": {
                "approaching": self.policy.approaching_pct,
                "exceeded": self.policy.exceeded_pct,
            },
            "limits": [limit.to_dict() for limit in self._limits],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LimitTable":
        thresholds = data.get("thresholds") or {}
        try:
            policy = TierPolicy(
                approaching_pct=float(thresholds.get("approaching", FTL_APPROACHING_THRESHOLD)),
                exceeded_pct=float(thresholds.get("exceeded", FTL_EXCEEDED_THRESHOLD)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid thresholds: {e}")

        limits = data.get("limits")
        if not isinstance(limits, list) or not limits:
            raise ConfigurationError("Limit table must contain a non-empty 'limits' list")
        return cls([LimitDefinition.from_dict(item) for item in limits], policy)


# Operator cumulative limits: duty 55h/7d, 95h/14d, 190h/28d;
# flight 100h/28d and 900h over 12 consecutive months (365 days)
DEFAULT_LIMITS = (
    LimitDefinition("duty_time_7d", Metric.DUTY, 7, 55.0),
    LimitDefinition("duty_time_14d", Metric.DUTY, 14, 95.0),
    LimitDefinition("duty_time_28d", Metric.DUTY, 28, 190.0),
    LimitDefinition("flight_time_28d", Metric.FLIGHT, 28, 100.0),
    LimitDefinition("flight_time_365d", Metric.FLIGHT, 365, 900.0),
)


def load_limit_table(path: Union[str, Path, None] = None) -> LimitTable:
    """
    Load the limit table from a JSON file, or the built-in defaults.

    Args:
        path: JSON file path; falls back to FTL_LIMITS_FILE, then defaults

    Returns:
        LimitTable

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    path = path or FTL_LIMITS_FILE
    if not path:
        logger.info(f"Using default FTL limit table ({len(DEFAULT_LIMITS)} limits)")
        return LimitTable(DEFAULT_LIMITS)

    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Missing limit table file: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read limit table {path}: {e}")

    table = LimitTable.from_dict(data)
    logger.info(f"Loaded {len(table)} FTL limits from {os.fspath(path)}")
    return table


# =====================================================
# Evaluation
# =====================================================

@dataclass(frozen=True)
class Evaluation:
    """
    Result of comparing a total against one limit.

    percentage is the raw value and may exceed 100; progress is the
    same value clamped to [0, 100] for progress bars only.
    """
    percentage: float
    tier: Tier

    @property
    def progress(self) -> float:
        return min(max(self.percentage, 0.0), 100.0)


def evaluate(
    total: float,
    limit: LimitDefinition,
    policy: TierPolicy = DEFAULT_TIER_POLICY,
) -> Evaluation:
    """
    Compare an accumulated total against a limit.

    Args:
        total: Accumulated hours over the limit's window
        limit: Limit definition
        policy: Default tier thresholds (per-limit overrides win)

    Returns:
        Evaluation with unclamped percentage and tier
    """
    percentage = total * 100.0 / limit.max_hours
    return Evaluation(percentage=percentage, tier=limit.policy(policy).classify(percentage))
