"""
Quiet Hours and Digest Scheduling

Timezone-aware quiet-hours checks and next-digest-time calculation.
Digest times are expressed as cron expressions so croniter handles
weekday rollover and DST transitions.
"""

import logging
from datetime import datetime, time, timezone
from typing import Optional

import pytz
from croniter import croniter

from .models import DigestFrequency, NotificationPreferences, parse_time_of_day

logger = logging.getLogger(__name__)

DEFAULT_WEEKLY_DIGEST_DAY = 1  # Monday (0=Sunday)


def time_in_window(current: time, start: time, end: time) -> bool:
    """
    Check whether a time of day falls inside [start, end).

    A window whose start is later than its end wraps past midnight.
    """
    if start > end:
        return current >= start or current < end
    return start <= current < end


def _ensure_aware(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def is_in_quiet_hours(prefs: NotificationPreferences, now: datetime) -> bool:
    """
    Check if now falls inside the organization's quiet-hours window.

    The window is evaluated in quiet_hours_timezone. A timezone or time
    that cannot be parsed is treated as "not in quiet hours".
    """
    if not prefs.quiet_hours_enabled:
        return False

    try:
        tz = pytz.timezone(prefs.quiet_hours_timezone)
        start = parse_time_of_day(prefs.quiet_hours_start)
        end = parse_time_of_day(prefs.quiet_hours_end)
    except (pytz.UnknownTimeZoneError, ValueError) as e:
        logger.warning(
            f"Invalid quiet hours configuration for org {prefs.org_id}: {e}",
            extra={"org_id": prefs.org_id}
        )
        return False

    local_now = _ensure_aware(now).astimezone(tz)
    return time_in_window(local_now.time().replace(microsecond=0), start, end)


def _next_cron_time(expression: str, timezone_str: str, now: datetime) -> datetime:
    """Next time strictly after now matching expression in timezone_str, returned in UTC."""
    tz = pytz.timezone(timezone_str)
    base_time = _ensure_aware(now).astimezone(tz)

    cron = croniter(expression, base_time)
    next_run = cron.get_next(datetime)

    if next_run.tzinfo is None:
        next_run = tz.localize(next_run)

    return next_run.astimezone(timezone.utc)


def digest_cron_expression(prefs: NotificationPreferences) -> str:
    """Cron expression for the organization's digest delivery slot."""
    delivery = parse_time_of_day(prefs.digest_delivery_time)
    if prefs.digest_frequency == DigestFrequency.WEEKLY:
        day = prefs.digest_delivery_day
        if day is None:
            day = DEFAULT_WEEKLY_DIGEST_DAY
        return f"{delivery.minute} {delivery.hour} * * {day}"
    return f"{delivery.minute} {delivery.hour} * * *"


def next_quiet_hours_end(prefs: NotificationPreferences, now: datetime) -> datetime:
    end = parse_time_of_day(prefs.quiet_hours_end)
    return _next_cron_time(f"{end.minute} {end.hour} * * *", prefs.quiet_hours_timezone, now)


def next_digest_time(prefs: NotificationPreferences, now: Optional[datetime] = None) -> datetime:
    """
    Calculate when a deferred alert should be delivered.

    Daily and weekly digests use the configured delivery time (and weekday)
    in the digest timezone. With frequency "immediate" an alert can only be
    deferred by quiet hours, so it is scheduled for the end of the window.

    Returns:
        Next delivery time in UTC, strictly after now
    """
    now = now or datetime.now(timezone.utc)

    if prefs.digest_frequency == DigestFrequency.IMMEDIATE:
        return next_quiet_hours_end(prefs, now)

    return _next_cron_time(digest_cron_expression(prefs), prefs.digest_delivery_timezone, now)
