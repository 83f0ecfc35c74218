#!/usr/bin/env python3
"""
Task Orchestrator
=================
Runs the scheduled tasks whose cron schedule matches the current UTC minute.

    evaluate-alerts   EVALUATE_ALERTS_SCHEDULE   (default: hourly)
    send-digests      SEND_DIGESTS_SCHEDULE      (default: every 15 minutes)

Each task runs under its max duration. With --loop the orchestrator
wakes at the start of every minute and keeps state (suppression window,
digest queue) in memory between ticks.

Usage:
    python -m jobs.orchestrator                     # Run tasks due now, then exit
    python -m jobs.orchestrator --loop              # Run forever
    python -m jobs.orchestrator --task send-digests # Run one task regardless of schedule
    python -m jobs.orchestrator --list              # Show tasks and next run times
    python -m jobs.orchestrator --metrics           # Print Prometheus metrics on exit
"""

import argparse
import asyncio
import sys
from datetime import datetime, timezone

from src.app.config import settings
from src.app.container import Container, get_container
from src.core.notifications.adapters import WebhookChannelAdapter
from src.core.observability.metrics import get_metrics
from src.core.scheduler.task_scheduler import (
    format_task_result,
    get_task_by_id,
    next_run_time,
)
from src.core.utils.logging import setup_logging


def parse_args():
    parser = argparse.ArgumentParser(description="Scheduled Task Orchestrator")
    parser.add_argument("--loop", action="store_true", help="Keep running, one tick per minute")
    parser.add_argument("--task", type=str, default=None, help="Run a single task by ID now")
    parser.add_argument("--list", action="store_true", help="List tasks and exit")
    parser.add_argument("--metrics", action="store_true", help="Print Prometheus metrics before exiting")
    parser.add_argument("--config-path", type=str, default=None,
                        help="YAML config directory (default: CONFIG_PATH)")
    return parser.parse_args()


async def _sleep_until_next_minute():
    now = datetime.now(timezone.utc)
    await asyncio.sleep(60 - now.second - now.microsecond / 1_000_000)


async def main():
    args = parse_args()
    setup_logging()

    if args.config_path:
        container = Container.from_config_files(settings, args.config_path)
    else:
        container = get_container()
    orchestrator = container.build_orchestrator()

    if args.list:
        for task in orchestrator.tasks:
            state = "enabled" if task.enabled else "disabled"
            print(f"{task.id:20} {task.schedule:15} {state:9} next: {next_run_time(task).isoformat()}")
        return

    print("=" * 60)
    print("Task Orchestrator")
    print(f"Started at: {datetime.now(timezone.utc).isoformat()}")
    print("=" * 60)

    try:
        if args.task:
            task = get_task_by_id(args.task, orchestrator.tasks)
            if task is None:
                print(f"ERROR: Unknown task '{args.task}'")
                sys.exit(1)
            result = await orchestrator.run_task(task)
            print(format_task_result(result))
            if not result.success:
                print(f"  Error: {result.error}")
                sys.exit(1)
            return

        while True:
            results = await orchestrator.run_due_tasks()
            for result in results:
                print(format_task_result(result))
            if not args.loop:
                break
            await _sleep_until_next_minute()
    finally:
        await WebhookChannelAdapter.close_session()
        if args.metrics:
            print(get_metrics().decode("utf-8"))


if __name__ == "__main__":
    asyncio.run(main())
