"""
Digest Delivery

Routing of accepted alerts (immediate vs deferred), quiet hours,
digest queue and aggregation.

Components:
- DeliveryRouter: immediate vs queued decision with reason codes
- quiet_hours: timezone-aware window checks and next digest time
- aggregator: severity counts, per-target cost impact, formatting

DigestQueueManager and DigestJob live in queue_manager and digest_job.
"""

from .models import (
    DigestFrequency,
    DigestQueueEntry,
    NotificationPreferences,
    RoutingAction,
    RoutingDecision,
)
from .quiet_hours import is_in_quiet_hours, next_digest_time, time_in_window
from .router import DeliveryRouter, RoutingReason
from .aggregator import (
    DigestData,
    aggregate_alerts_for_digest,
    format_digest_period,
    format_severity_summary,
    format_time_since,
)

__all__ = [
    "DigestFrequency",
    "DigestQueueEntry",
    "NotificationPreferences",
    "RoutingAction",
    "RoutingDecision",
    "is_in_quiet_hours",
    "next_digest_time",
    "time_in_window",
    "DeliveryRouter",
    "RoutingReason",
    "DigestData",
    "aggregate_alerts_for_digest",
    "format_digest_period",
    "format_severity_summary",
    "format_time_since",
]
