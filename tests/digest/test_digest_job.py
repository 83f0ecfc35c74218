"""
Test Digest Job

Draining due queue entries into one digest per organization.
"""

import pytest
from datetime import timedelta

from src.core.alerts.models import AlertSeverity
from src.core.digest.digest_job import DigestJob
from src.core.digest.queue_manager import DigestQueueManager
from src.core.notifications.dispatcher import NotificationDispatcher
from src.core.notifications.registry import ProviderType, SendOutcome
from src.core.stores.memory import (
    InMemoryAlertStore,
    InMemoryChannelSettingsStore,
    InMemoryDigestQueueStore,
    InMemoryPreferencesStore,
)


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def queue_store():
    return InMemoryDigestQueueStore()


@pytest.fixture
def preferences_store():
    return InMemoryPreferencesStore()


@pytest.fixture
def channel_store(org_channels):
    return InMemoryChannelSettingsStore([org_channels])


@pytest.fixture
def job(queue_store, preferences_store, channel_store, fake_registry, fake_sleep):
    return DigestJob(
        queue_manager=DigestQueueManager(queue_store, InMemoryAlertStore()),
        preferences_store=preferences_store,
        channel_store=channel_store,
        dispatcher=NotificationDispatcher(fake_registry, retry_delays=[0, 30, 300], sleep=fake_sleep),
        app_url="https://cloudhalo.test",
    )


@pytest.fixture
def queued(queue_store):
    async def _queue(*entries):
        for entry in entries:
            await queue_store.insert(entry)
    return _queue


# ============================================
# Tests
# ============================================

class TestDigestJob:

    @pytest.mark.asyncio
    async def test_sends_one_digest_and_marks_entries(
        self, job, queued, queue_store, make_entry, fake_providers, now
    ):
        await queued(
            make_entry("a1", alert_severity=AlertSeverity.LOW),
            make_entry("a2", alert_severity=AlertSeverity.HIGH, current_cost=300.0),
        )

        summary = await job.run(now)

        assert summary.sent == 1
        result = summary.results[0]
        assert result.alert_count == 2
        assert result.batch_id is not None

        email_calls = fake_providers[ProviderType.EMAIL].calls
        assert len(email_calls) == 1
        payload = email_calls[0]["payload"]
        assert payload.kind == "digest"
        assert payload.title == "Cost Alert Digest - 2 Alerts"
        assert payload.severity == "high"
        assert "Total cost impact: $250.00" in payload.message
        assert payload.link == "https://cloudhalo.test/dashboard/alerts"

        for alert_id in ("a1", "a2"):
            entry = await queue_store.get(alert_id)
            assert entry.digest_batch_id == result.batch_id
            assert entry.included_in_digest_at == now

        again = await job.run(now)
        assert again.processed == 0

    @pytest.mark.asyncio
    async def test_entries_not_yet_due_are_left(self, job, queued, queue_store, make_entry, fake_providers, now):
        await queued(make_entry("future", scheduled_for=now + timedelta(hours=1)))

        summary = await job.run(now)

        assert summary.processed == 0
        assert fake_providers[ProviderType.EMAIL].calls == []
        assert (await queue_store.get("future")).is_pending

    @pytest.mark.asyncio
    async def test_all_channels_failing_keeps_entries_pending(
        self, job, queued, queue_store, make_entry, fake_providers, fake_sleep, now
    ):
        for provider_type in (ProviderType.EMAIL, ProviderType.SLACK):
            fake_providers[provider_type].outcomes = [ConnectionError("down")] * 3
        await queued(make_entry("a1"))

        summary = await job.run(now)

        assert summary.failed == 1
        assert (await queue_store.get("a1")).is_pending
        assert sorted(fake_sleep.delays) == [30, 30, 300, 300]

    @pytest.mark.asyncio
    async def test_partial_channel_failure_still_marks_sent(
        self, job, queued, queue_store, make_entry, fake_providers, now
    ):
        fake_providers[ProviderType.SLACK].outcomes = [SendOutcome(success=False, error="HTTP 500")] * 3
        await queued(make_entry("a1"))

        summary = await job.run(now)

        assert summary.sent == 1
        assert not (await queue_store.get("a1")).is_pending

    @pytest.mark.asyncio
    async def test_missing_channel_settings_skips(self, job, queued, queue_store, make_entry, now):
        await queued(make_entry("a1", org_id="org-without-channels"))

        summary = await job.run(now)

        assert summary.skipped == 1
        assert (await queue_store.get("a1")).is_pending

    @pytest.mark.asyncio
    async def test_digest_recipients_override_email_addresses(
        self, job, queued, preferences_store, make_entry, make_preferences, fake_providers, now
    ):
        await preferences_store.save_preferences(
            make_preferences(digest_mode_enabled=True, digest_recipients=["cfo@example.com"])
        )
        await queued(make_entry("a1"))

        await job.run(now)

        assert fake_providers[ProviderType.EMAIL].calls[0]["destination"] == ["cfo@example.com"]

    @pytest.mark.asyncio
    async def test_orgs_are_processed_independently(self, job, queued, channel_store, org_channels, make_entry, now):
        channel_store.add(org_channels.model_copy(update={"org_id": "org-2"}))
        await queued(make_entry("a1"), make_entry("b1", org_id="org-2"))

        summary = await job.run(now)

        assert summary.processed == 2
        assert summary.sent == 2
        assert {r.org_id for r in summary.results} == {"org-1", "org-2"}
