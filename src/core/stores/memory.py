"""
In-memory store implementations.

Used by the job scripts with YAML-loaded configuration and by tests.
"""

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from src.core.alerts.models import AlertEvent, AlertRule, CostAggregate
from src.core.digest.models import DigestQueueEntry, NotificationPreferences
from src.core.notifications.registry import NotificationChannels
from .base import (
    AlertStore,
    ChannelSettingsStore,
    CostFeed,
    DigestQueueStore,
    PreferencesStore,
    RuleStore,
)

logger = logging.getLogger(__name__)


class InMemoryCostFeed(CostFeed):
    def __init__(self, aggregates: Optional[Iterable[CostAggregate]] = None):
        self._aggregates: List[CostAggregate] = list(aggregates or [])

    def add(self, aggregate: CostAggregate) -> None:
        self._aggregates.append(aggregate)

    async def get_costs(self, target_id: str, start: date, end: date) -> List[CostAggregate]:
        return [
            a for a in self._aggregates
            if a.target_id == target_id and start <= a.usage_date <= end
        ]


class InMemoryRuleStore(RuleStore):
    def __init__(self, rules: Optional[Iterable[AlertRule]] = None):
        self._rules: Dict[str, AlertRule] = {r.rule_id: r for r in (rules or [])}

    def add(self, rule: AlertRule) -> None:
        self._rules[rule.rule_id] = rule

    async def list_active_rules(self) -> List[AlertRule]:
        return [r for r in self._rules.values() if r.is_active]

    async def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        return self._rules.get(rule_id)


class InMemoryAlertStore(AlertStore):
    def __init__(self):
        self._alerts: Dict[str, AlertEvent] = {}

    async def find_recent(
        self,
        rule_id: str,
        target_id: str,
        since: datetime
    ) -> Optional[AlertEvent]:
        matches = [
            a for a in self._alerts.values()
            if a.rule_id == rule_id and a.target_id == target_id and a.triggered_at >= since
        ]
        if not matches:
            return None
        return max(matches, key=lambda a: a.triggered_at)

    async def insert(self, event: AlertEvent) -> None:
        if event.alert_id in self._alerts:
            raise ValueError(f"Alert {event.alert_id} already exists")
        self._alerts[event.alert_id] = event

    async def get(self, alert_id: str) -> Optional[AlertEvent]:
        return self._alerts.get(alert_id)

    async def list_for_org(self, org_id: str) -> List[AlertEvent]:
        return sorted(
            (a for a in self._alerts.values() if a.org_id == org_id),
            key=lambda a: a.triggered_at
        )

    async def mark_queued(self, alert_id: str) -> None:
        alert = self._alerts.get(alert_id)
        if alert is None:
            raise KeyError(alert_id)
        self._alerts[alert_id] = alert.model_copy(update={"queued_for_digest": True})

    async def assign_digest_batch(self, alert_ids: Iterable[str], batch_id: str) -> None:
        for alert_id in alert_ids:
            alert = self._alerts.get(alert_id)
            if alert is not None and alert.digest_batch_id is None:
                self._alerts[alert_id] = alert.model_copy(update={"digest_batch_id": batch_id})


class InMemoryPreferencesStore(PreferencesStore):
    def __init__(self, preferences: Optional[Iterable[NotificationPreferences]] = None):
        self._prefs: Dict[str, NotificationPreferences] = {
            p.org_id: p for p in (preferences or [])
        }

    async def get_preferences(self, org_id: str) -> Optional[NotificationPreferences]:
        return self._prefs.get(org_id)

    async def save_preferences(self, preferences: NotificationPreferences) -> None:
        self._prefs[preferences.org_id] = preferences


class InMemoryChannelSettingsStore(ChannelSettingsStore):
    def __init__(self, channels: Optional[Iterable[NotificationChannels]] = None):
        self._channels: Dict[str, NotificationChannels] = {
            c.org_id: c for c in (channels or [])
        }

    def add(self, channels: NotificationChannels) -> None:
        self._channels[channels.org_id] = channels

    async def get_channels(self, org_id: str) -> Optional[NotificationChannels]:
        return self._channels.get(org_id)


class InMemoryDigestQueueStore(DigestQueueStore):
    def __init__(self):
        self._entries: Dict[str, DigestQueueEntry] = {}

    async def insert(self, entry: DigestQueueEntry) -> None:
        existing = self._entries.get(entry.alert_id)
        if existing is not None and existing.included_in_digest_at is None:
            logger.debug(f"Alert {entry.alert_id} already queued, keeping earliest entry")
            return
        self._entries[entry.alert_id] = entry

    async def list_pending(self, org_id: str, now: datetime) -> List[DigestQueueEntry]:
        return sorted(
            (
                e for e in self._entries.values()
                if e.org_id == org_id and e.is_pending and e.scheduled_for <= now
            ),
            key=lambda e: (e.scheduled_for, e.triggered_at)
        )

    async def list_orgs_with_pending(self, now: datetime) -> List[str]:
        return sorted({
            e.org_id for e in self._entries.values()
            if e.is_pending and e.scheduled_for <= now
        })

    async def mark_included(
        self,
        alert_ids: Iterable[str],
        batch_id: str,
        included_at: datetime
    ) -> int:
        marked = 0
        for alert_id in alert_ids:
            entry = self._entries.get(alert_id)
            if entry is None or not entry.is_pending:
                continue
            self._entries[alert_id] = entry.model_copy(update={
                "included_in_digest_at": included_at,
                "digest_batch_id": batch_id,
            })
            marked += 1
        return marked

    async def get(self, alert_id: str) -> Optional[DigestQueueEntry]:
        return self._entries.get(alert_id)
