"""
Root conftest.py - Sets environment variables before any module imports.

Settings are read once at import time, so the environment is pinned here
before src.app.config is imported by any test module.
"""

import os
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Union

import pytest

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("APP_URL", "https://cloudhalo.test")
os.environ.setdefault("EMAIL_SMTP_HOST", "smtp.test.local")

from src.core.alerts.models import (  # noqa: E402
    AlertEvent,
    AlertRule,
    AlertSeverity,
    CostAggregate,
    CostWindow,
    ResourceCost,
    RuleKind,
)
from src.core.digest.models import DigestQueueEntry, NotificationPreferences  # noqa: E402
from src.core.notifications.registry import (  # noqa: E402
    NotificationChannels,
    NotificationPayload,
    NotificationProviderInterface,
    NotificationProviderRegistry,
    ProviderType,
    SendOutcome,
)


# ============================================
# Fake Provider
# ============================================

class FakeProvider(NotificationProviderInterface):
    """
    Scripted provider: each send pops the next outcome.

    An outcome may be a SendOutcome or an exception instance to raise.
    Once the script runs out every send succeeds.
    """

    def __init__(self, provider_type: ProviderType, outcomes: Optional[List[Any]] = None):
        self._type = provider_type
        self.outcomes = list(outcomes or [])
        self.calls: List[Dict[str, Any]] = []

    @property
    def provider_type(self) -> ProviderType:
        return self._type

    async def send(
        self,
        payload: NotificationPayload,
        destination: Union[str, List[str]]
    ) -> SendOutcome:
        self.calls.append({"payload": payload, "destination": destination})
        outcome = self.outcomes.pop(0) if self.outcomes else SendOutcome(success=True)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def as_of() -> date:
    # Saturday
    return date(2026, 10, 17)


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_rule():
    def _make(**overrides) -> AlertRule:
        data = {
            "rule_id": "rule-1",
            "org_id": "org-1",
            "target_id": "tenant-1",
            "target_name": "Production",
            "name": "Daily Spend",
            "kind": RuleKind.THRESHOLD,
            "threshold_amount": 100.0,
            "channels": ["email", "slack"],
        }
        data.update(overrides)
        return AlertRule(**data)
    return _make


@pytest.fixture
def make_window(as_of):
    """Build a CostWindow from {date: total} or {date: (total, [resources])}."""
    def _make(totals: Dict[date, Any], target_id: str = "tenant-1", window_date: Optional[date] = None):
        aggregates = []
        for day, value in totals.items():
            total, resources = value if isinstance(value, tuple) else (value, [])
            aggregates.append(CostAggregate(
                target_id=target_id,
                usage_date=day,
                total_cost=total,
                resources=tuple(ResourceCost(**r) for r in resources),
            ))
        return CostWindow(as_of=window_date or as_of, aggregates=tuple(aggregates))
    return _make


@pytest.fixture
def make_alert(now):
    def _make(**overrides) -> AlertEvent:
        data = {
            "alert_id": "alert-1",
            "org_id": "org-1",
            "rule_id": "rule-1",
            "rule_name": "Daily Spend",
            "rule_kind": RuleKind.THRESHOLD,
            "target_id": "tenant-1",
            "target_name": "Production",
            "severity": AlertSeverity.LOW,
            "title": "Daily Spend - LOW",
            "message": "Cost exceeded threshold of $100.00",
            "observed_value": 110.0,
            "threshold_value": 100.0,
            "channels": ("email",),
            "triggered_at": now,
        }
        data.update(overrides)
        return AlertEvent(**data)
    return _make


@pytest.fixture
def make_entry(now):
    def _make(alert_id: str, **overrides) -> DigestQueueEntry:
        data = {
            "alert_id": alert_id,
            "org_id": "org-1",
            "scheduled_for": now,
            "alert_title": f"Alert {alert_id}",
            "alert_severity": AlertSeverity.MEDIUM,
            "target_id": "tenant-1",
            "target_name": "Production",
            "current_cost": 150.0,
            "threshold_value": 100.0,
            "triggered_at": now,
        }
        data.update(overrides)
        return DigestQueueEntry(**data)
    return _make


@pytest.fixture
def make_preferences():
    def _make(**overrides) -> NotificationPreferences:
        return NotificationPreferences(**{"org_id": "org-1", **overrides})
    return _make


@pytest.fixture
def org_channels() -> NotificationChannels:
    return NotificationChannels(
        org_id="org-1",
        email_enabled=True,
        email_addresses=["finops@example.com"],
        slack_enabled=True,
        slack_webhook_url="https://hooks.slack.com/services/T000/B000/XXXX",
        teams_enabled=False,
    )


@pytest.fixture
def fake_providers() -> Dict[ProviderType, FakeProvider]:
    return {provider_type: FakeProvider(provider_type) for provider_type in ProviderType}


@pytest.fixture
def fake_registry(fake_providers) -> NotificationProviderRegistry:
    registry = NotificationProviderRegistry()
    for provider in fake_providers.values():
        registry.register(provider)
    return registry
