"""
Digest Aggregator

Groups queued alerts into a digest: counts by severity, cost impact per
target, and the period the alerts span.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from src.core.alerts.models import AlertSeverity
from src.core.exceptions import EmptyDigestError
from .models import DigestQueueEntry

logger = logging.getLogger(__name__)

UNKNOWN_TARGET_NAME = "Unknown Tenant"

# Display order, most severe first
SEVERITY_ORDER = (
    AlertSeverity.CRITICAL,
    AlertSeverity.HIGH,
    AlertSeverity.MEDIUM,
    AlertSeverity.LOW,
)


class TargetDigestGroup(BaseModel):
    """Alerts for one monitored target within a digest."""
    target_id: str
    target_name: str
    alerts: List[DigestQueueEntry] = Field(default_factory=list)
    total_cost_impact: float = 0.0


class DigestData(BaseModel):
    """Aggregated digest for one organization."""
    org_id: str
    period_start: datetime
    period_end: datetime
    total_alerts: int
    severity_counts: Dict[AlertSeverity, int]
    alerts_by_target: List[TargetDigestGroup]
    total_cost_impact: float
    alert_ids: List[str]

    def count(self, severity: AlertSeverity) -> int:
        return self.severity_counts.get(severity, 0)


def cost_impact(entry: DigestQueueEntry) -> float:
    """Amount over threshold for one alert, never negative."""
    return max(0.0, (entry.current_cost or 0) - (entry.threshold_value or 0))


def aggregate_alerts_for_digest(entries: Sequence[DigestQueueEntry]) -> DigestData:
    """
    Aggregate queued alerts for one organization.

    Entries without a target are skipped with a warning.

    Raises:
        EmptyDigestError: If entries is empty
    """
    if not entries:
        raise EmptyDigestError()

    groups: Dict[str, TargetDigestGroup] = {}
    counts: Dict[AlertSeverity, int] = {severity: 0 for severity in SEVERITY_ORDER}
    total_impact = 0.0
    included: List[DigestQueueEntry] = []

    for entry in entries:
        if not entry.target_id:
            logger.warning(f"Skipping digest entry with no target: {entry.alert_id}")
            continue

        counts[entry.alert_severity] += 1
        impact = cost_impact(entry)
        total_impact += impact

        group = groups.get(entry.target_id)
        if group is None:
            group = TargetDigestGroup(
                target_id=entry.target_id,
                target_name=entry.target_name or UNKNOWN_TARGET_NAME,
            )
            groups[entry.target_id] = group
        group.alerts.append(entry)
        group.total_cost_impact += impact
        included.append(entry)

    if not included:
        raise EmptyDigestError("No digest entries had a target")

    triggered = sorted(e.triggered_at for e in included)

    return DigestData(
        org_id=entries[0].org_id,
        period_start=triggered[0],
        period_end=triggered[-1],
        total_alerts=len(included),
        severity_counts=counts,
        alerts_by_target=sorted(groups.values(), key=lambda g: g.total_cost_impact, reverse=True),
        total_cost_impact=total_impact,
        alert_ids=[e.alert_id for e in included],
    )


# ============================================
# Formatting Helpers
# ============================================

def format_digest_period(period_start: datetime, period_end: datetime) -> str:
    """'October 19, 2026' for one day, 'Oct 12 - Oct 19, 2026' for a range."""
    if period_start.date() == period_end.date():
        return f"{period_start:%B} {period_start.day}, {period_start.year}"
    return (
        f"{period_start:%b} {period_start.day} - "
        f"{period_end:%b} {period_end.day}, {period_end.year}"
    )


def format_severity_summary(data: DigestData) -> str:
    """e.g. '2 critical and 1 low' or '1 critical, 2 high, and 3 low'."""
    parts = [
        f"{data.count(severity)} {severity.value}"
        for severity in SEVERITY_ORDER
        if data.count(severity) > 0
    ]

    if not parts:
        return "No alerts"
    if len(parts) == 1:
        return parts[0]
    if len(parts) == 2:
        return " and ".join(parts)
    return ", ".join(parts[:-1]) + ", and " + parts[-1]


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def format_time_since(timestamp: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    seconds = (now - timestamp).total_seconds()
    minutes = int(seconds // 60)
    if minutes < 60:
        return _plural(minutes, "minute")
    hours = int(seconds // 3600)
    if hours < 24:
        return _plural(hours, "hour")
    return _plural(int(seconds // 86400), "day")
