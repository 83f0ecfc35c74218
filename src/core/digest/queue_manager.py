"""
Digest Queue Manager

Persists deferred alerts and hands due entries to the digest job.

Entry lifecycle:
    queued (included_in_digest_at is None) -> included (batch id + timestamp set)

Included is terminal; marking an entry twice is a no-op.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from src.core.alerts.models import AlertEvent
from src.core.exceptions import DigestQueueError
from src.core.stores.base import AlertStore, DigestQueueStore
from src.core.utils.logging import safe_error_log
from .models import DigestQueueEntry

logger = logging.getLogger(__name__)


class DigestQueueManager:
    """Digest queue operations over the queue and alert stores."""

    def __init__(self, queue_store: DigestQueueStore, alert_store: AlertStore):
        self.queue_store = queue_store
        self.alert_store = alert_store

    async def queue_alert(self, alert: AlertEvent, scheduled_for: datetime) -> DigestQueueEntry:
        """
        Queue an alert for digest delivery and flag it as queued.

        Raises:
            DigestQueueError: If the queue entry cannot be written. A failure to
                flag the alert afterwards is logged, the entry still stands.
        """
        entry = DigestQueueEntry(
            alert_id=alert.alert_id,
            org_id=alert.org_id,
            scheduled_for=scheduled_for,
            alert_title=alert.title,
            alert_severity=alert.severity,
            target_id=alert.target_id,
            target_name=alert.target_name,
            current_cost=alert.observed_value,
            threshold_value=alert.threshold_value,
            percent_change=alert.percent_change,
            triggered_at=alert.triggered_at,
        )

        try:
            await self.queue_store.insert(entry)
        except Exception as e:
            raise DigestQueueError(
                f"Failed to queue alert {alert.alert_id} for digest",
                context={"alert_id": alert.alert_id, "org_id": alert.org_id},
                original_error=e,
            ) from e

        # Digest delivery reads the queue entry, not this flag.
        try:
            await self.alert_store.mark_queued(alert.alert_id)
        except Exception as e:
            safe_error_log(
                logger,
                f"Alert {alert.alert_id} queued but its queued flag was not saved",
                e,
                alert_id=alert.alert_id,
                org_id=alert.org_id,
            )

        logger.info(
            f"Alert {alert.alert_id} queued for digest at {scheduled_for.isoformat()}",
            extra={"alert_id": alert.alert_id, "org_id": alert.org_id}
        )
        return entry

    async def get_pending_items(
        self,
        org_id: str,
        now: Optional[datetime] = None
    ) -> List[DigestQueueEntry]:
        """Entries for org_id not yet included in a digest and due by now."""
        now = now or datetime.now(timezone.utc)
        return await self.queue_store.list_pending(org_id, now)

    async def get_orgs_with_pending(self, now: Optional[datetime] = None) -> List[str]:
        now = now or datetime.now(timezone.utc)
        return await self.queue_store.list_orgs_with_pending(now)

    async def mark_items_sent(
        self,
        alert_ids: Iterable[str],
        batch_id: str,
        now: Optional[datetime] = None
    ) -> int:
        """
        Mark entries as included in a digest batch.

        Returns:
            Number of entries newly marked (already-included entries are skipped)

        Raises:
            DigestQueueError: If the marking write fails
        """
        now = now or datetime.now(timezone.utc)
        alert_ids = list(alert_ids)
        try:
            marked = await self.queue_store.mark_included(alert_ids, batch_id, now)
            await self.alert_store.assign_digest_batch(alert_ids, batch_id)
        except Exception as e:
            raise DigestQueueError(
                f"Failed to mark digest batch {batch_id} as sent",
                context={"batch_id": batch_id, "count": len(alert_ids)},
                original_error=e,
            ) from e

        logger.info(f"Marked {marked}/{len(alert_ids)} digest entries sent in batch {batch_id}")
        return marked
