"""
Notification Dispatcher

Fans a payload out to every enabled channel of an organization. Channels
run concurrently and independently; each gets its own retry schedule.
"""

import asyncio
import logging
from functools import partial
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

from src.core.observability.metrics import record_channel_delivery
from .registry import (
    DeliveryAttemptResult,
    NotificationChannels,
    NotificationPayload,
    NotificationProviderRegistry,
    ProviderType,
)
from .retry import DEFAULT_RETRY_DELAYS, send_with_retry

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Multi-channel delivery with per-channel retry."""

    def __init__(
        self,
        registry: NotificationProviderRegistry,
        retry_delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self.retry_delays = list(retry_delays)
        self._sleep = sleep

    def _selected_channels(
        self,
        channels: NotificationChannels,
        requested: Optional[Iterable[str]]
    ) -> List[ProviderType]:
        wanted = None if requested is None else {c.lower() for c in requested}
        return [
            provider_type for provider_type in ProviderType
            if channels.is_enabled(provider_type)
            and (wanted is None or provider_type.value in wanted)
        ]

    async def _deliver_one(
        self,
        provider_type: ProviderType,
        payload: NotificationPayload,
        channels: NotificationChannels
    ) -> DeliveryAttemptResult:
        provider = self.registry.get_provider(provider_type)
        if provider is None:
            return DeliveryAttemptResult(
                channel=provider_type.value,
                success=False,
                error=f"No {provider_type.value} provider registered",
            )

        destination = channels.destination(provider_type)
        if not destination:
            return DeliveryAttemptResult(
                channel=provider_type.value,
                success=False,
                error=f"{provider_type.value} enabled but no destination configured",
            )

        return await send_with_retry(
            provider_type.value,
            partial(provider.send, payload, destination),
            delays=self.retry_delays,
            sleep=self._sleep,
        )

    async def deliver(
        self,
        payload: NotificationPayload,
        channels: NotificationChannels,
        requested: Optional[Iterable[str]] = None
    ) -> List[DeliveryAttemptResult]:
        """
        Deliver payload to each enabled channel.

        Args:
            payload: Rendered notification
            channels: Organization channel settings
            requested: Optional channel names to restrict to (e.g. a rule's channels)

        Returns:
            One DeliveryAttemptResult per selected channel; never raises
        """
        selected = self._selected_channels(channels, requested)
        if not selected:
            logger.warning(
                f"No enabled channels for org {channels.org_id}",
                extra={"org_id": channels.org_id}
            )
            return []

        outcomes = await asyncio.gather(
            *[self._deliver_one(p, payload, channels) for p in selected],
            return_exceptions=True
        )

        results: List[DeliveryAttemptResult] = []
        for provider_type, outcome in zip(selected, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(
                    f"Unexpected error delivering to {provider_type.value}: {outcome}",
                    exc_info=outcome
                )
                outcome = DeliveryAttemptResult(
                    channel=provider_type.value,
                    success=False,
                    error=str(outcome),
                )
            record_channel_delivery(outcome.channel, outcome.success, outcome.retries)
            results.append(outcome)

        delivered = sum(1 for r in results if r.success)
        logger.info(
            f"Delivered '{payload.title}' to {delivered}/{len(results)} channels",
            extra={"org_id": channels.org_id, "alert_id": payload.alert_id}
        )
        return results
