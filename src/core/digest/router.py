"""
Delivery Router

Decides whether an accepted alert is delivered now or deferred to a digest.

Decision order:
1. No preferences -> immediate
2. Digest mode (frequency not "immediate") -> queued unless the severity bypasses
3. Inside quiet hours -> queued unless the severity bypasses
4. Otherwise -> immediate
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from src.core.alerts.models import AlertEvent, AlertSeverity
from .models import (
    DigestFrequency,
    NotificationPreferences,
    RoutingAction,
    RoutingDecision,
)
from .quiet_hours import is_in_quiet_hours, next_digest_time

logger = logging.getLogger(__name__)


class RoutingReason:
    NO_PREFERENCES = "no_preferences"
    CRITICAL_BYPASS = "critical_bypass"
    HIGH_BYPASS = "high_bypass"
    DIGEST_MODE_ENABLED = "digest_mode_enabled"
    CRITICAL_BYPASS_QUIET_HOURS = "critical_bypass_quiet_hours"
    HIGH_BYPASS_QUIET_HOURS = "high_bypass_quiet_hours"
    QUIET_HOURS_ACTIVE = "quiet_hours_active"
    IMMEDIATE_SEND = "immediate_send"
    QUEUE_WRITE_FAILED = "queue_write_failed"


_DIGEST_BYPASS_REASONS = {
    AlertSeverity.CRITICAL: RoutingReason.CRITICAL_BYPASS,
    AlertSeverity.HIGH: RoutingReason.HIGH_BYPASS,
}

_QUIET_HOURS_BYPASS_REASONS = {
    AlertSeverity.CRITICAL: RoutingReason.CRITICAL_BYPASS_QUIET_HOURS,
    AlertSeverity.HIGH: RoutingReason.HIGH_BYPASS_QUIET_HOURS,
}


def _immediate(reason: str) -> RoutingDecision:
    return RoutingDecision(action=RoutingAction.IMMEDIATE, reason=reason)


def _queued(reason: str, prefs: NotificationPreferences, now: datetime) -> RoutingDecision:
    return RoutingDecision(
        action=RoutingAction.QUEUED,
        reason=reason,
        scheduled_for=next_digest_time(prefs, now),
    )


class DeliveryRouter:
    """Routes alerts to immediate delivery or the digest queue."""

    def route(
        self,
        alert: AlertEvent,
        preferences: Optional[NotificationPreferences],
        now: Optional[datetime] = None
    ) -> RoutingDecision:
        now = now or datetime.now(timezone.utc)
        decision = self._decide(alert.severity, preferences, now)
        logger.info(
            f"Alert {alert.alert_id} routed: {decision.action.value} ({decision.reason})",
            extra={
                "alert_id": alert.alert_id,
                "org_id": alert.org_id,
                "action": decision.action.value,
                "reason": decision.reason,
            }
        )
        return decision

    def _decide(
        self,
        severity: AlertSeverity,
        prefs: Optional[NotificationPreferences],
        now: datetime
    ) -> RoutingDecision:
        if prefs is None:
            return _immediate(RoutingReason.NO_PREFERENCES)

        if prefs.digest_mode_enabled and prefs.digest_frequency != DigestFrequency.IMMEDIATE:
            if prefs.bypasses(severity):
                return _immediate(_DIGEST_BYPASS_REASONS[severity])
            return _queued(RoutingReason.DIGEST_MODE_ENABLED, prefs, now)

        if is_in_quiet_hours(prefs, now):
            if prefs.bypasses(severity):
                return _immediate(_QUIET_HOURS_BYPASS_REASONS[severity])
            return _queued(RoutingReason.QUIET_HOURS_ACTIVE, prefs, now)

        return _immediate(RoutingReason.IMMEDIATE_SEND)
