"""
Digest Models

Notification preferences, routing decisions and digest queue entries.
"""

import re
from datetime import datetime, time
from enum import Enum
from typing import List, Optional

import pytz
from pydantic import BaseModel, Field, field_validator

from src.core.alerts.models import AlertSeverity

# HH:MM with optional :SS
TIME_REGEX = re.compile(r'^([01]?[0-9]|2[0-3]):([0-5][0-9])(?::([0-5][0-9]))?$')


def parse_time_of_day(value: str) -> time:
    """Parse an HH:MM or HH:MM:SS string into a time."""
    match = TIME_REGEX.match(value)
    if not match:
        raise ValueError(f"Invalid time format (expected HH:MM): {value}")
    hour, minute, second = match.groups()
    return time(int(hour), int(minute), int(second or 0))


class DigestFrequency(str, Enum):
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"


class RoutingAction(str, Enum):
    IMMEDIATE = "immediate"
    QUEUED = "queued"


class NotificationPreferences(BaseModel):
    """
    Per-organization delivery preferences.

    Defaults match a freshly created organization: no quiet hours, no digest,
    critical alerts bypass quiet hours.
    """
    org_id: str = Field(..., description="Organization")

    quiet_hours_enabled: bool = False
    quiet_hours_start: str = Field(default="22:00", description="Quiet hours start (HH:MM)")
    quiet_hours_end: str = Field(default="07:00", description="Quiet hours end (HH:MM)")
    quiet_hours_timezone: str = Field(default="UTC", description="Quiet hours timezone")

    digest_mode_enabled: bool = False
    digest_frequency: DigestFrequency = DigestFrequency.DAILY
    digest_delivery_time: str = Field(default="08:00", description="Digest delivery time (HH:MM)")
    digest_delivery_day: Optional[int] = Field(
        default=None,
        ge=0,
        le=6,
        description="Weekly digest day, 0=Sunday .. 6=Saturday (default Monday)"
    )
    digest_delivery_timezone: str = Field(default="UTC", description="Digest timezone")
    digest_recipients: List[str] = Field(default_factory=list, description="Digest email recipients")

    critical_alerts_bypass_quiet_hours: bool = True
    high_alerts_bypass_quiet_hours: bool = False

    @field_validator("quiet_hours_start", "quiet_hours_end", "digest_delivery_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Validate HH:MM time format."""
        parse_time_of_day(v)
        return v

    @field_validator("quiet_hours_timezone", "digest_delivery_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            pytz.timezone(v)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @classmethod
    def defaults(cls, org_id: str) -> "NotificationPreferences":
        return cls(org_id=org_id)

    def bypasses(self, severity: AlertSeverity) -> bool:
        """True if this severity is delivered immediately despite digest mode or quiet hours."""
        if severity == AlertSeverity.CRITICAL:
            return self.critical_alerts_bypass_quiet_hours
        if severity == AlertSeverity.HIGH:
            return self.high_alerts_bypass_quiet_hours
        return False


class RoutingDecision(BaseModel):
    """Whether an alert is sent now or deferred to a digest."""
    action: RoutingAction
    reason: str
    scheduled_for: Optional[datetime] = None

    @property
    def is_immediate(self) -> bool:
        return self.action == RoutingAction.IMMEDIATE


class DigestQueueEntry(BaseModel):
    """Alert deferred for a later digest, with a denormalized summary."""
    alert_id: str
    org_id: str
    scheduled_for: datetime
    alert_title: str
    alert_severity: AlertSeverity
    target_id: Optional[str] = None
    target_name: Optional[str] = None
    current_cost: Optional[float] = None
    threshold_value: Optional[float] = None
    percent_change: Optional[float] = None
    triggered_at: datetime
    included_in_digest_at: Optional[datetime] = None
    digest_batch_id: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.included_in_digest_at is None
