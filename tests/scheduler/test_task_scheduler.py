"""
Test Cron Task Scheduler

Cron parsing, schedule matching and the orchestrator's duration ceiling.
"""

import asyncio
import pytest
from datetime import datetime, timezone

from src.app.config import Settings
from src.core.exceptions import InvalidCronExpressionError
from src.core.notifications.registry import SendOutcome
from src.core.notifications.retry import send_with_retry
from src.core.scheduler.task_scheduler import (
    CronTask,
    TaskOrchestrator,
    build_cron_tasks,
    format_task_result,
    get_task_by_id,
    get_tasks_to_run,
    next_run_time,
    parse_cron_expression,
    should_task_run,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ============================================
# Parsing and Matching
# ============================================

class TestCronParsing:

    def test_parse_components(self):
        parts = parse_cron_expression("*/15 8-18 * * 1,3,5")
        assert parts.minute == "*/15"
        assert parts.hour == "8-18"
        assert parts.weekday == "1,3,5"

    @pytest.mark.parametrize("expression", ["* * * *", "61 * * * *", "0 0 * * * *", "every hour"])
    def test_invalid_expressions(self, expression):
        with pytest.raises(InvalidCronExpressionError):
            parse_cron_expression(expression)

    def test_invalid_schedule_rejected_by_task(self):
        with pytest.raises(ValueError):
            CronTask(id="x", name="X", schedule="bad")


class TestScheduleMatching:

    @pytest.fixture
    def tasks(self):
        return build_cron_tasks(Settings(
            evaluate_alerts_schedule="0 * * * *",
            send_digests_schedule="*/15 * * * *",
        ))

    def test_hourly_and_quarter_hour(self, tasks):
        at_top_of_hour = [t.id for t in get_tasks_to_run(utc(2026, 10, 19, 9, 0), tasks)]
        at_quarter = [t.id for t in get_tasks_to_run(utc(2026, 10, 19, 9, 15), tasks)]
        off_schedule = get_tasks_to_run(utc(2026, 10, 19, 9, 7), tasks)

        assert at_top_of_hour == ["evaluate-alerts", "send-digests"]
        assert at_quarter == ["send-digests"]
        assert off_schedule == []

    def test_seconds_are_ignored(self, tasks):
        task = get_task_by_id("evaluate-alerts", tasks)
        assert should_task_run(task, utc(2026, 10, 19, 9, 0, 42))

    def test_disabled_task_never_runs(self, tasks):
        task = get_task_by_id("evaluate-alerts", tasks).model_copy(update={"enabled": False})
        assert not should_task_run(task, utc(2026, 10, 19, 9, 0))

    def test_next_run_time(self, tasks):
        task = get_task_by_id("send-digests", tasks)
        assert next_run_time(task, utc(2026, 10, 19, 9, 15)) == utc(2026, 10, 19, 9, 30)

    def test_unknown_task(self, tasks):
        assert get_task_by_id("nope", tasks) is None


# ============================================
# Orchestrator
# ============================================

class TestTaskOrchestrator:

    @pytest.mark.asyncio
    async def test_runs_due_handlers_with_now(self):
        seen = []

        async def handler(now):
            seen.append(now)
            return {"ok": True}

        task = CronTask(id="t1", name="Task One", schedule="* * * * *")
        orchestrator = TaskOrchestrator({"t1": handler}, [task])

        results = await orchestrator.run_due_tasks(utc(2026, 10, 19, 9, 0))

        assert len(results) == 1
        assert results[0].success is True
        assert results[0].response == {"ok": True}
        assert seen == [utc(2026, 10, 19, 9, 0)]

    @pytest.mark.asyncio
    async def test_task_exceeding_max_duration_fails(self):
        async def slow(now):
            await asyncio.sleep(5)

        task = CronTask(id="slow", name="Slow", schedule="* * * * *", max_duration_seconds=1)

        result = await TaskOrchestrator({"slow": slow}, [task]).run_task(task)

        assert result.success is False
        assert "max duration" in result.error

    @pytest.mark.asyncio
    async def test_retry_schedule_completes_within_ceiling(self):
        outcomes = [SendOutcome(success=False, error="HTTP 503"), SendOutcome(success=False, error="HTTP 503")]

        async def flaky_send():
            return outcomes.pop(0) if outcomes else SendOutcome(success=True, status_code=200)

        async def deliver(now):
            attempt = await send_with_retry("slack", flaky_send, delays=[0, 0.05, 0.1])
            return attempt.to_dict()

        task = CronTask(id="deliver", name="Deliver", schedule="* * * * *", max_duration_seconds=1)
        result = await TaskOrchestrator({"deliver": deliver}, [task]).run_task(task)

        assert result.success is True
        assert result.response["success"] is True
        assert result.response["retries"] == 2

    @pytest.mark.asyncio
    async def test_handler_error_is_reported(self):
        async def broken(now):
            raise RuntimeError("boom")

        task = CronTask(id="b", name="Broken", schedule="* * * * *")
        result = await TaskOrchestrator({"b": broken}, [task]).run_task(task)

        assert result.success is False
        assert result.error == "boom"
        assert format_task_result(result).startswith("[FAILED] Broken")

    @pytest.mark.asyncio
    async def test_missing_handler(self):
        task = CronTask(id="orphan", name="Orphan", schedule="* * * * *")
        result = await TaskOrchestrator({}, [task]).run_task(task)

        assert result.success is False
        assert "No handler" in result.error
