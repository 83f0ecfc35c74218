"""
Test Application Container

Wiring from settings and sample configs through a full evaluation and digest run.
"""

import pytest
from datetime import date, datetime, timezone
from pathlib import Path

from src.app.config import Settings
from src.app.container import Container, get_container, reset_container
from src.core.notifications.registry import ProviderType

REPO_CONFIGS = Path(__file__).resolve().parents[1] / "configs"


@pytest.fixture
def container(fake_registry):
    settings = Settings(notification_retry_delays_seconds=[0])
    container = Container.from_config_files(settings, REPO_CONFIGS)
    container.dispatcher.registry = fake_registry
    return container


class TestContainer:

    def test_builtin_registry_has_all_channels(self):
        container = Container.from_config_files(Settings(), REPO_CONFIGS)
        assert set(container.registry.list_providers()) == set(ProviderType)

    def test_orchestrator_has_both_tasks(self, container):
        orchestrator = container.build_orchestrator()
        assert sorted(t.id for t in orchestrator.tasks) == ["evaluate-alerts", "send-digests"]
        assert set(orchestrator.handlers) == {"evaluate-alerts", "send-digests"}

    def test_singleton_reset(self):
        reset_container()
        try:
            assert get_container() is get_container()
        finally:
            reset_container()

    @pytest.mark.asyncio
    async def test_sample_configs_end_to_end(self, container, fake_providers):
        # Saturday 2026-10-17 14:00 UTC: 10:00 in New York, 16:00 in Berlin
        now = datetime(2026, 10, 17, 14, 0, tzinfo=timezone.utc)

        summary = await container.alert_engine.evaluate_all_rules(now=now, as_of=date(2026, 10, 17))

        assert summary.rules_evaluated == 4
        assert summary.errors == 0
        by_rule = {d["rule_id"]: d for d in summary.details}
        # acme threshold: 250 vs 100 is critical and delivered now
        assert by_rule["rule_daily_spend_acme_prod"]["severity"] == "critical"
        assert by_rule["rule_daily_spend_acme_prod"]["delivered"] is True
        # globex weekend spend is low severity and globex is in daily digest mode
        assert by_rule["rule_weekend_globex"]["routing"] == "queued"
        assert fake_providers[ProviderType.SLACK].calls

        digest_time = datetime(2026, 10, 18, 6, 0, tzinfo=timezone.utc)
        digests = await container.digest_job.run(digest_time)

        assert digests.sent == 1
        assert digests.results[0].org_id == "globex"
