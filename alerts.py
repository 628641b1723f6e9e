"""
FTL Alerts

One alert per limit that is approaching (warning) or exceeded
(critical) at a snapshot's anchor date. Alerts are derived on demand
from FTLMetrics and never stored.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from duration_codec import encode
from limit_evaluator import Tier
from metrics_projection import FTLMetrics, LimitMetric

logger = logging.getLogger(__name__)


class AlertType(Enum):
    FTL_WARNING = "FTL_WARNING"
    FTL_CRITICAL = "FTL_CRITICAL"


class AlertSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


_TIER_ALERTS = {
    Tier.APPROACHING: (AlertType.FTL_WARNING, AlertSeverity.WARNING, "FTL Warning"),
    Tier.EXCEEDED: (AlertType.FTL_CRITICAL, AlertSeverity.CRITICAL, "FTL Exceeded"),
}

_SEVERITY_ORDER = [AlertSeverity.CRITICAL, AlertSeverity.WARNING, AlertSeverity.INFO]


@dataclass
class Alert:
    """An FTL alert for one staff member and one limit."""
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    staff_id: Optional[str] = None
    limit_name: Optional[str] = None
    anchor_date: Optional[date] = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_type": self.alert_type.value,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "staff_id": self.staff_id,
            "limit_name": self.limit_name,
            "anchor_date": self.anchor_date.isoformat() if self.anchor_date else None,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Alert":
        alert = cls(
            alert_type=AlertType(data["alert_type"]),
            severity=AlertSeverity(data["severity"]),
            title=data["title"],
            message=data["message"],
            data=dict(data.get("data") or {}),
            staff_id=data.get("staff_id"),
            limit_name=data.get("limit_name"),
        )
        if data.get("anchor_date"):
            alert.anchor_date = date.fromisoformat(data["anchor_date"])
        if data.get("created_at"):
            alert.created_at = datetime.fromisoformat(data["created_at"])
        return alert


# =====================================================
# Generation
# =====================================================

def alert_for_limit(metrics: FTLMetrics, item: LimitMetric) -> Optional[Alert]:
    """Alert for one evaluated limit, or None when it is nominal."""
    if item.tier not in _TIER_ALERTS:
        return None

    alert_type, severity, heading = _TIER_ALERTS[item.tier]
    label = item.label or item.name

    return Alert(
        alert_type=alert_type,
        severity=severity,
        title=f"{heading}: {metrics.staff_id or 'unknown staff'}",
        message=f"{label}: {encode(item.total)} of {item.limit:g}h ({item.percentage:.1f}%)",
        data={
            "total": item.total,
            "limit": item.limit,
            "percentage": item.percentage,
            "window_days": item.window_days,
            "metric": item.metric.value,
        },
        staff_id=metrics.staff_id,
        limit_name=item.name,
        anchor_date=metrics.anchor_date,
    )


def generate_ftl_alerts(metrics_list: Iterable[FTLMetrics]) -> List[Alert]:
    """
    Generate FTL alerts from metrics snapshots.

    Args:
        metrics_list: FTLMetrics snapshots (any staff, any anchor)

    Returns:
        List of Alert objects, critical first; within a severity, in
        snapshot then limit-table order
    """
    found = [
        alert
        for metrics in metrics_list
        for alert in (alert_for_limit(metrics, item) for item in metrics.limits)
        if alert is not None
    ]
    found.sort(key=lambda a: _SEVERITY_ORDER.index(a.severity))

    if found:
        logger.info(f"Generated {len(found)} FTL alerts")
    return found


def summarize_alerts(alerts: List[Alert], latest: int = 5) -> Dict[str, Any]:
    """Alert counts by severity plus the first few alerts."""
    counts = {severity.value: 0 for severity in reversed(_SEVERITY_ORDER)}
    for alert in alerts:
        counts[alert.severity.value] += 1

    return {
        "total_active": len(alerts),
        "by_severity": counts,
        "staff_affected": len({a.staff_id for a in alerts}),
        "latest": [a.to_dict() for a in alerts[:latest]],
    }
