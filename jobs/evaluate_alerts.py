#!/usr/bin/env python3
"""
Evaluate Alerts Job
===================
Evaluates every active cost alert rule once.

For each rule: fetch the cost window, evaluate, suppress duplicates from
the last hour, then deliver immediately or queue for the org's digest.

Usage:
    python -m jobs.evaluate_alerts                          # Evaluate today (UTC)
    python -m jobs.evaluate_alerts --as-of 2026-10-17       # Evaluate a specific cost date
    python -m jobs.evaluate_alerts --config-path ./configs  # Alternate YAML config directory

Environment:
    CONFIG_PATH: YAML config directory (default: ./configs)
    APP_URL: Dashboard base URL for alert links
    EMAIL_SMTP_*: SMTP settings for email delivery
"""

import argparse
import asyncio
import sys
from datetime import date, datetime, timezone

from src.app.config import settings
from src.app.container import Container, get_container
from src.core.notifications.adapters import WebhookChannelAdapter
from src.core.utils.logging import setup_logging


def parse_args():
    parser = argparse.ArgumentParser(description="Evaluate Cost Alert Rules")
    parser.add_argument("--as-of", type=date.fromisoformat, default=None,
                        help="Cost date to evaluate, YYYY-MM-DD (default: today UTC)")
    parser.add_argument("--config-path", type=str, default=None,
                        help="YAML config directory (default: CONFIG_PATH)")
    return parser.parse_args()


async def main():
    args = parse_args()
    setup_logging()

    print("=" * 60)
    print("Evaluate Alerts Job")
    print(f"Started at: {datetime.now(timezone.utc).isoformat()}")
    print("=" * 60)

    if args.config_path:
        container = Container.from_config_files(settings, args.config_path)
    else:
        container = get_container()
    try:
        summary = await container.alert_engine.evaluate_all_rules(as_of=args.as_of)
    finally:
        await WebhookChannelAdapter.close_session()

    print(f"\nRules evaluated: {summary.rules_evaluated}")
    print(f"  - Triggered: {summary.triggered}")
    print(f"      delivered now: {summary.delivered}")
    print(f"      queued for digest: {summary.queued}")
    print(f"      delivery failures: {summary.delivery_failures}")
    print(f"  - Suppressed (duplicate): {summary.suppressed}")
    print(f"  - No match: {summary.no_match}")
    print(f"  - No data: {summary.no_data}")
    print(f"  - Errors: {summary.errors}")
    print(f"Duration: {summary.duration_ms:.0f}ms")

    errors = [d for d in summary.details if d.get("status") == "error"]
    if errors:
        print("\nRule errors:")
        for detail in errors[:10]:
            print(f"  - {detail['rule_id']}: {detail.get('error')}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
