"""
Notification Payload Builders

Turn alert events and aggregated digests into provider-agnostic payloads.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from src.core.alerts.models import AlertEvent, RuleKind
from src.core.digest.aggregator import (
    SEVERITY_ORDER,
    DigestData,
    format_digest_period,
    format_severity_summary,
    format_time_since,
)
from src.core.digest.models import DigestQueueEntry
from .registry import NotificationPayload

THRESHOLD_LABELS = {
    RuleKind.PERCENTAGE_SPIKE: "Previous Cost",
    RuleKind.BUDGET: "Projected Cost",
}


def alert_link(app_url: str, alert_id: Optional[str] = None) -> str:
    base = f"{app_url.rstrip('/')}/dashboard/alerts"
    if alert_id:
        return f"{base}?highlight={alert_id}"
    return base


def build_alert_payload(alert: AlertEvent, app_url: str) -> NotificationPayload:
    """Payload for immediate delivery of a single alert."""
    return NotificationPayload(
        title=alert.title,
        message=alert.message,
        severity=alert.severity.value,
        kind="alert",
        org_id=alert.org_id,
        alert_id=alert.alert_id,
        target_name=alert.target_name,
        triggered_at=alert.triggered_at,
        link=alert_link(app_url, alert.alert_id),
        observed_value=alert.observed_value,
        threshold_value=alert.threshold_value,
        threshold_label=THRESHOLD_LABELS.get(alert.rule_kind, "Threshold"),
        percent_change=alert.percent_change,
        contributors=[r.model_dump() for r in alert.top_resources],
        data={"Rule": alert.rule_name},
    )


def digest_title(total_alerts: int) -> str:
    return f"Cost Alert Digest - {total_alerts} Alert{'s' if total_alerts != 1 else ''}"


def digest_alert_item(entry: DigestQueueEntry, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Per-alert fields rendered inside a digest section."""
    return {
        "alert_id": entry.alert_id,
        "title": entry.alert_title,
        "severity": entry.alert_severity.value,
        "current_value": entry.current_cost,
        "threshold_value": entry.threshold_value,
        "percent_change": entry.percent_change,
        "triggered_at": entry.triggered_at.isoformat(),
        "time_since": format_time_since(entry.triggered_at, now),
    }


def build_digest_payload(
    digest: DigestData,
    app_url: str,
    now: Optional[datetime] = None
) -> NotificationPayload:
    """
    Payload summarizing a digest batch, one section per target.

    Each section lists its alerts with severity, current and threshold
    values, percent change and how long ago the alert fired.
    """
    highest = next(
        (severity for severity in SEVERITY_ORDER if digest.count(severity) > 0),
        SEVERITY_ORDER[-1],
    )
    period = format_digest_period(digest.period_start, digest.period_end)
    target_count = len(digest.alerts_by_target)

    message = (
        f"{format_severity_summary(digest)} across {target_count} "
        f"tenant{'s' if target_count != 1 else ''} ({period}). "
        f"Total cost impact: ${digest.total_cost_impact:,.2f}"
    )

    return NotificationPayload(
        title=digest_title(digest.total_alerts),
        message=message,
        severity=highest.value,
        kind="digest",
        org_id=digest.org_id,
        triggered_at=digest.period_end,
        link=alert_link(app_url),
        sections=[
            {
                "target_name": group.target_name,
                "alert_count": len(group.alerts),
                "cost_impact": group.total_cost_impact,
                "alerts": [digest_alert_item(entry, now) for entry in group.alerts],
            }
            for group in digest.alerts_by_target
        ],
        data={"Period": period},
    )
