"""
Alert Deduplicator

Turns alert candidates into persisted alert events, dropping candidates
that repeat an alert for the same (rule, target) inside the suppression window.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from src.core.exceptions import AlertPersistenceError
from src.core.stores.base import AlertStore
from .models import AlertCandidate, AlertEvent

logger = logging.getLogger(__name__)


def format_alert_title(candidate: AlertCandidate) -> str:
    return f"{candidate.rule_name} - {candidate.severity.value.upper()}"


def format_alert_message(candidate: AlertCandidate) -> str:
    if candidate.percent_change is not None:
        return f"Cost increased by {candidate.percent_change}% and exceeded threshold"
    return f"Cost exceeded threshold of ${candidate.threshold_value:.2f}"


class AlertDeduplicator:
    """
    Suppression-window gate in front of the alert store.

    The check-then-insert for a given (rule_id, target_id) runs under a
    per-key asyncio.Lock, so concurrent duplicates produce one event.
    A key's lock is dropped once no caller holds or waits on it.
    """

    def __init__(self, store: AlertStore, window_minutes: int = 60):
        self.store = store
        self.window = timedelta(minutes=window_minutes)
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[str, str], int] = {}

    def _acquire_slot(self, key: Tuple[str, str]) -> asyncio.Lock:
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        return self._locks.setdefault(key, asyncio.Lock())

    def _release_slot(self, key: Tuple[str, str]) -> None:
        self._lock_users[key] -= 1
        if self._lock_users[key] == 0:
            del self._lock_users[key]
            del self._locks[key]

    async def accept(
        self,
        candidate: AlertCandidate,
        now: Optional[datetime] = None
    ) -> Optional[AlertEvent]:
        """
        Persist the candidate unless an alert for the same key exists in the window.

        Args:
            candidate: Candidate produced by the rule evaluator
            now: Evaluation time (defaults to current UTC time)

        Returns:
            The new AlertEvent, or None when suppressed

        Raises:
            AlertPersistenceError: If the store read or write fails
        """
        now = now or datetime.now(timezone.utc)
        key = (candidate.rule_id, candidate.target_id)

        lock = self._acquire_slot(key)
        try:
            async with lock:
                event = await self._accept_locked(candidate, now)
        finally:
            self._release_slot(key)

        if event is not None:
            logger.info(
                f"Alert created: {event.title}",
                extra={"alert_id": event.alert_id, "org_id": event.org_id, "severity": event.severity.value}
            )
        return event

    async def _accept_locked(self, candidate: AlertCandidate, now: datetime) -> Optional[AlertEvent]:
        try:
            existing = await self.store.find_recent(
                candidate.rule_id, candidate.target_id, now - self.window
            )
        except Exception as e:
            raise AlertPersistenceError(
                f"Failed to check recent alerts for rule {candidate.rule_id}",
                context={"rule_id": candidate.rule_id, "target_id": candidate.target_id},
                original_error=e,
            ) from e

        if existing is not None:
            logger.info(
                f"Suppressed duplicate alert for rule {candidate.rule_id}",
                extra={
                    "rule_id": candidate.rule_id,
                    "target_id": candidate.target_id,
                    "existing_alert_id": existing.alert_id,
                }
            )
            return None

        event = AlertEvent(
            alert_id=str(uuid.uuid4()),
            org_id=candidate.org_id,
            rule_id=candidate.rule_id,
            rule_name=candidate.rule_name,
            rule_kind=candidate.rule_kind,
            target_id=candidate.target_id,
            target_name=candidate.target_name,
            severity=candidate.severity,
            title=format_alert_title(candidate),
            message=format_alert_message(candidate),
            observed_value=candidate.observed_value,
            threshold_value=candidate.threshold_value,
            percent_change=candidate.percent_change,
            top_resources=candidate.top_resources,
            channels=candidate.channels,
            triggered_at=now,
        )

        try:
            await self.store.insert(event)
        except Exception as e:
            raise AlertPersistenceError(
                f"Failed to persist alert for rule {candidate.rule_id}",
                context={"rule_id": candidate.rule_id, "target_id": candidate.target_id},
                original_error=e,
            ) from e
        return event
