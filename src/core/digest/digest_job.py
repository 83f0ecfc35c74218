"""
Digest Job

Drains due digest queue entries for every organization: aggregate,
deliver once across the organization's channels, then mark the batch sent.

Entries stay pending when no channel accepts the digest, so the next run
retries them.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.core.exceptions import AlertPipelineError
from src.core.notifications.dispatcher import NotificationDispatcher
from src.core.notifications.payloads import build_digest_payload
from src.core.observability.metrics import increment_digest_batch
from src.core.stores.base import ChannelSettingsStore, PreferencesStore
from src.core.utils.logging import safe_error_log
from .aggregator import aggregate_alerts_for_digest
from .queue_manager import DigestQueueManager

logger = logging.getLogger(__name__)


class DigestOrgResult(BaseModel):
    org_id: str
    status: str  # sent, skipped, failed
    alert_count: int = 0
    batch_id: Optional[str] = None
    deliveries: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None


class DigestRunSummary(BaseModel):
    """Summary of one digest run across organizations."""
    processed: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
    results: List[DigestOrgResult] = Field(default_factory=list)
    duration_ms: float = 0


class DigestJob:
    """Scheduled digest delivery."""

    def __init__(
        self,
        queue_manager: DigestQueueManager,
        preferences_store: PreferencesStore,
        channel_store: ChannelSettingsStore,
        dispatcher: NotificationDispatcher,
        app_url: str = "https://cloudhalo.app",
    ):
        self.queue_manager = queue_manager
        self.preferences_store = preferences_store
        self.channel_store = channel_store
        self.dispatcher = dispatcher
        self.app_url = app_url

    async def run(self, now: Optional[datetime] = None) -> DigestRunSummary:
        """Process every organization with due entries, concurrently."""
        now = now or datetime.now(timezone.utc)
        start_time = datetime.now(timezone.utc)
        summary = DigestRunSummary()

        org_ids = await self.queue_manager.get_orgs_with_pending(now)
        logger.info(f"Processing digests for {len(org_ids)} organizations")

        results = await asyncio.gather(*[self._process_org_isolated(org_id, now) for org_id in org_ids])

        for result in results:
            summary.processed += 1
            if result.status == "sent":
                summary.sent += 1
            elif result.status == "skipped":
                summary.skipped += 1
            else:
                summary.failed += 1
                if result.error:
                    summary.errors.append(f"{result.org_id}: {result.error}")
            increment_digest_batch(result.status)
            summary.results.append(result)

        summary.duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
        logger.info(
            f"Digest run complete: {summary.sent} sent, {summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    async def _process_org_isolated(self, org_id: str, now: datetime) -> DigestOrgResult:
        try:
            return await self.process_org(org_id, now)
        except AlertPipelineError as e:
            logger.error(f"Digest failed for org {org_id}: {e.message}", extra={"org_id": org_id})
            return DigestOrgResult(org_id=org_id, status="failed", error=e.message)
        except Exception as e:
            safe_error_log(logger, f"Digest failed for org {org_id}", e, org_id=org_id)
            return DigestOrgResult(org_id=org_id, status="failed", error=str(e))

    async def process_org(self, org_id: str, now: datetime) -> DigestOrgResult:
        entries = await self.queue_manager.get_pending_items(org_id, now)
        if not entries:
            return DigestOrgResult(org_id=org_id, status="skipped")

        channels = await self.channel_store.get_channels(org_id)
        if channels is None:
            logger.warning(f"No channel settings for org {org_id}; digest left pending")
            return DigestOrgResult(
                org_id=org_id,
                status="skipped",
                alert_count=len(entries),
                error="no channel settings",
            )

        preferences = await self.preferences_store.get_preferences(org_id)
        if preferences is not None and preferences.digest_recipients:
            channels = channels.model_copy(update={"email_addresses": list(preferences.digest_recipients)})

        digest = aggregate_alerts_for_digest(entries)
        payload = build_digest_payload(digest, self.app_url, now)
        deliveries = await self.dispatcher.deliver(payload, channels)

        if not any(d.success for d in deliveries):
            logger.error(
                f"Digest for org {org_id} not delivered on any channel; {len(entries)} entries stay pending",
                extra={"org_id": org_id}
            )
            return DigestOrgResult(
                org_id=org_id,
                status="failed",
                alert_count=digest.total_alerts,
                deliveries=[d.to_dict() for d in deliveries],
                error="all channels failed",
            )

        batch_id = str(uuid.uuid4())
        await self.queue_manager.mark_items_sent(digest.alert_ids, batch_id, now)

        logger.info(
            f"Digest sent for org {org_id}: {digest.total_alerts} alerts, batch {batch_id}",
            extra={"org_id": org_id, "batch_id": batch_id}
        )
        return DigestOrgResult(
            org_id=org_id,
            status="sent",
            alert_count=digest.total_alerts,
            batch_id=batch_id,
            deliveries=[d.to_dict() for d in deliveries],
        )
