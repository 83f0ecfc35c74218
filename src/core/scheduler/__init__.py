"""
Scheduler Module

Cron task table and orchestrator for alert evaluation and digest delivery.
"""

from .task_scheduler import (
    CRON_TASKS,
    CronTask,
    TaskExecutionResult,
    TaskOrchestrator,
    build_cron_tasks,
    format_task_result,
    get_task_by_id,
    get_tasks_to_run,
    next_run_time,
    parse_cron_expression,
    should_task_run,
)

__all__ = [
    "CRON_TASKS",
    "CronTask",
    "TaskExecutionResult",
    "TaskOrchestrator",
    "build_cron_tasks",
    "format_task_result",
    "get_task_by_id",
    "get_tasks_to_run",
    "next_run_time",
    "parse_cron_expression",
    "should_task_run",
]
