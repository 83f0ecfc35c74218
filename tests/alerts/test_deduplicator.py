"""
Test Alert Deduplicator

Suppression window per (rule, target), including concurrent acceptance.
"""

import asyncio
import pytest
from datetime import date, timedelta
from unittest.mock import AsyncMock

from src.core.alerts.deduplicator import AlertDeduplicator, format_alert_message, format_alert_title
from src.core.alerts.models import AlertCandidate, AlertSeverity, RuleKind
from src.core.exceptions import AlertPersistenceError, ErrorCode
from src.core.stores.memory import InMemoryAlertStore


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def candidate() -> AlertCandidate:
    return AlertCandidate(
        rule_id="rule-1",
        rule_name="Daily Spend",
        rule_kind=RuleKind.THRESHOLD,
        org_id="org-1",
        target_id="tenant-1",
        target_name="Production",
        severity=AlertSeverity.CRITICAL,
        observed_value=250.0,
        threshold_value=100.0,
        channels=("email",),
        as_of=date(2026, 10, 17),
    )


@pytest.fixture
def store():
    return InMemoryAlertStore()


@pytest.fixture
def deduplicator(store):
    return AlertDeduplicator(store, window_minutes=60)


# ============================================
# Tests
# ============================================

class TestAlertDeduplicator:

    @pytest.mark.asyncio
    async def test_first_candidate_is_persisted(self, deduplicator, store, candidate, now):
        event = await deduplicator.accept(candidate, now)

        assert event is not None
        assert event.title == "Daily Spend - CRITICAL"
        assert event.message == "Cost exceeded threshold of $100.00"
        assert event.triggered_at == now
        assert await store.get(event.alert_id) == event

    @pytest.mark.asyncio
    async def test_repeat_within_window_is_suppressed(self, deduplicator, store, candidate, now):
        await deduplicator.accept(candidate, now)

        repeat = await deduplicator.accept(candidate, now + timedelta(minutes=10))

        assert repeat is None
        assert len(await store.list_for_org("org-1")) == 1

    @pytest.mark.asyncio
    async def test_repeat_after_window_is_accepted(self, deduplicator, store, candidate, now):
        await deduplicator.accept(candidate, now)

        later = await deduplicator.accept(candidate, now + timedelta(minutes=61))

        assert later is not None
        assert len(await store.list_for_org("org-1")) == 2

    @pytest.mark.asyncio
    async def test_other_target_is_not_suppressed(self, deduplicator, candidate, now):
        await deduplicator.accept(candidate, now)
        other = candidate.model_copy(update={"target_id": "tenant-2"})

        assert await deduplicator.accept(other, now) is not None

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_produce_one_event(self, deduplicator, store, candidate, now):
        results = await asyncio.gather(*[deduplicator.accept(candidate, now) for _ in range(10)])

        accepted = [r for r in results if r is not None]
        assert len(accepted) == 1
        assert len(await store.list_for_org("org-1")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_with_yielding_store(self, deduplicator, store, candidate, now):
        real_find_recent = store.find_recent

        async def slow_find_recent(*args):
            await asyncio.sleep(0)
            return await real_find_recent(*args)

        store.find_recent = slow_find_recent

        results = await asyncio.gather(*[deduplicator.accept(candidate, now) for _ in range(10)])

        assert len([r for r in results if r is not None]) == 1
        assert len(await store.list_for_org("org-1")) == 1
        assert deduplicator._locks == {}

    @pytest.mark.asyncio
    async def test_locks_released_after_failure(self, candidate, now):
        store = InMemoryAlertStore()
        store.insert = AsyncMock(side_effect=RuntimeError("disk full"))
        deduplicator = AlertDeduplicator(store)

        with pytest.raises(AlertPersistenceError):
            await deduplicator.accept(candidate, now)

        assert deduplicator._locks == {}
        assert deduplicator._lock_users == {}

    @pytest.mark.asyncio
    async def test_store_failure_raises_persistence_error(self, candidate, now):
        store = InMemoryAlertStore()
        store.insert = AsyncMock(side_effect=RuntimeError("disk full"))

        with pytest.raises(AlertPersistenceError) as exc_info:
            await AlertDeduplicator(store).accept(candidate, now)

        assert exc_info.value.error_code == ErrorCode.ALERT_PERSISTENCE_FAILED
        assert isinstance(exc_info.value.original_error, RuntimeError)


class TestAlertText:

    def test_message_with_percent_change(self, candidate):
        spike = candidate.model_copy(update={"percent_change": 75.0})
        assert format_alert_message(spike) == "Cost increased by 75.0% and exceeded threshold"

    def test_title_uses_uppercase_severity(self, candidate):
        low = candidate.model_copy(update={"severity": AlertSeverity.LOW})
        assert format_alert_title(low) == "Daily Spend - LOW"
