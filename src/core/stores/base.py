"""
Store Interfaces

Abstract interfaces for the data the alert pipeline reads and writes.
The pipeline only depends on these; storage technology is pluggable.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Iterable, List, Optional

from src.core.alerts.models import AlertEvent, AlertRule, CostAggregate
from src.core.digest.models import DigestQueueEntry, NotificationPreferences
from src.core.notifications.registry import NotificationChannels


class CostFeed(ABC):
    """External source of daily cost aggregates."""

    @abstractmethod
    async def get_costs(self, target_id: str, start: date, end: date) -> List[CostAggregate]:
        """Return aggregates for target_id with start <= usage_date <= end."""
        pass


class RuleStore(ABC):
    """Read-only access to alert rules."""

    @abstractmethod
    async def list_active_rules(self) -> List[AlertRule]:
        pass

    @abstractmethod
    async def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        pass


class AlertStore(ABC):
    """Alert history. Events are never deleted."""

    @abstractmethod
    async def find_recent(
        self,
        rule_id: str,
        target_id: str,
        since: datetime
    ) -> Optional[AlertEvent]:
        """Most recent alert for (rule_id, target_id) triggered at or after since."""
        pass

    @abstractmethod
    async def insert(self, event: AlertEvent) -> None:
        pass

    @abstractmethod
    async def get(self, alert_id: str) -> Optional[AlertEvent]:
        pass

    @abstractmethod
    async def list_for_org(self, org_id: str) -> List[AlertEvent]:
        pass

    @abstractmethod
    async def mark_queued(self, alert_id: str) -> None:
        """Set queued_for_digest on an existing alert."""
        pass

    @abstractmethod
    async def assign_digest_batch(self, alert_ids: Iterable[str], batch_id: str) -> None:
        pass


class PreferencesStore(ABC):
    """Per-organization notification preferences; None means defaults were never saved."""

    @abstractmethod
    async def get_preferences(self, org_id: str) -> Optional[NotificationPreferences]:
        pass

    @abstractmethod
    async def save_preferences(self, preferences: NotificationPreferences) -> None:
        pass


class ChannelSettingsStore(ABC):
    """Per-organization channel settings (email addresses, webhook URLs)."""

    @abstractmethod
    async def get_channels(self, org_id: str) -> Optional[NotificationChannels]:
        pass


class DigestQueueStore(ABC):
    """Deferred alerts waiting for a digest."""

    @abstractmethod
    async def insert(self, entry: DigestQueueEntry) -> None:
        pass

    @abstractmethod
    async def list_pending(self, org_id: str, now: datetime) -> List[DigestQueueEntry]:
        """Entries not yet included in a digest with scheduled_for <= now, oldest first."""
        pass

    @abstractmethod
    async def list_orgs_with_pending(self, now: datetime) -> List[str]:
        pass

    @abstractmethod
    async def mark_included(
        self,
        alert_ids: Iterable[str],
        batch_id: str,
        included_at: datetime
    ) -> int:
        """Mark pending entries as sent. Already-included entries are left untouched.

        Returns:
            Number of entries newly marked
        """
        pass
