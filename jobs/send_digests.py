#!/usr/bin/env python3
"""
Send Digests Job
================
Delivers queued alerts as one digest per organization.

Only entries whose scheduled time has passed are included. Entries stay
queued if no channel accepts the digest.

Usage:
    python -m jobs.send_digests
    python -m jobs.send_digests --config-path ./configs
"""

import argparse
import asyncio
import sys
from datetime import datetime, timezone

from src.app.config import settings
from src.app.container import Container, get_container
from src.core.notifications.adapters import WebhookChannelAdapter
from src.core.utils.logging import setup_logging


def parse_args():
    parser = argparse.ArgumentParser(description="Send Alert Digests")
    parser.add_argument("--config-path", type=str, default=None,
                        help="YAML config directory (default: CONFIG_PATH)")
    return parser.parse_args()


async def main():
    args = parse_args()
    setup_logging()

    print("=" * 60)
    print("Send Digests Job")
    print(f"Started at: {datetime.now(timezone.utc).isoformat()}")
    print("=" * 60)

    if args.config_path:
        container = Container.from_config_files(settings, args.config_path)
    else:
        container = get_container()
    try:
        summary = await container.digest_job.run()
    finally:
        await WebhookChannelAdapter.close_session()

    print(f"\nOrganizations processed: {summary.processed}")
    print(f"  - Sent: {summary.sent}")
    print(f"  - Skipped: {summary.skipped}")
    print(f"  - Failed: {summary.failed}")

    if summary.errors:
        print("\nErrors:")
        for error in summary.errors[:10]:
            print(f"  - {error}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
