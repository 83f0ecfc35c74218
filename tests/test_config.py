"""
Test Settings

Task ceilings versus the notification retry schedule.
"""

import pytest
from pydantic import ValidationError

from src.app.config import Settings
from src.core.scheduler.task_scheduler import build_cron_tasks


class TestTaskCeilings:

    def test_default_worst_case_delivery_time(self):
        settings = Settings()

        # 0 + 30 + 300 seconds of waits plus three 30 second timeouts
        assert settings.max_delivery_seconds == 420

    def test_default_ceilings_cover_full_retry_schedule(self):
        settings = Settings()

        for task in build_cron_tasks(settings):
            assert task.max_duration_seconds > settings.max_delivery_seconds, task.id

    def test_evaluation_ceiling_shorter_than_retries_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(evaluate_alerts_max_duration_seconds=180)

        assert "evaluate_alerts_max_duration_seconds" in str(exc_info.value)

    def test_digest_ceiling_shorter_than_retries_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(send_digests_max_duration_seconds=300)

        assert "send_digests_max_duration_seconds" in str(exc_info.value)

    def test_shorter_retry_schedule_allows_shorter_ceilings(self):
        settings = Settings(
            notification_retry_delays_seconds=[0, 5, 10],
            notification_timeout_seconds=10,
            evaluate_alerts_max_duration_seconds=60,
            send_digests_max_duration_seconds=60,
        )

        assert settings.max_delivery_seconds == 45
