"""
Delivery Retry

send_with_retry runs one channel send with a fixed delay schedule and
always returns a DeliveryAttemptResult instead of raising.

Default schedule: attempt immediately, then after 30s, then after 5min.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
    wait_none,
)

from src.core.exceptions import ChannelConfigurationError
from .registry import DeliveryAttemptResult, SendOutcome

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAYS: Sequence[float] = (0, 30, 300)


def _is_retryable_exception(error: BaseException) -> bool:
    # CancelledError is a BaseException and must propagate
    return isinstance(error, Exception) and not isinstance(error, ChannelConfigurationError)


def _is_failed_outcome(outcome: Optional[SendOutcome]) -> bool:
    return outcome is None or not outcome.success


def _wait_strategy(delays: Sequence[float]):
    """Wait before attempt n+1 is delays[n]."""
    if len(delays) < 2:
        return wait_none()
    return wait_chain(*[wait_fixed(d) for d in delays[1:]])


async def send_with_retry(
    channel: str,
    send_fn: Callable[[], Awaitable[SendOutcome]],
    delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> DeliveryAttemptResult:
    """
    Send with retries on exceptions and unsuccessful outcomes.

    A ChannelConfigurationError stops immediately. Retries are reported
    zero-indexed: success on the third attempt gives retries=2, and so does
    failing all three attempts.

    Args:
        channel: Channel name for results and logs
        send_fn: Zero-argument coroutine function making one attempt
        delays: Delay in seconds before each attempt; its length is the attempt limit
        sleep: Awaitable sleep, injectable for tests

    Returns:
        DeliveryAttemptResult; never raises for delivery failures
    """
    delays = list(delays) or [0]
    attempts = 0

    async def _attempt() -> SendOutcome:
        nonlocal attempts
        attempts += 1
        return await send_fn()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(len(delays)),
        wait=_wait_strategy(delays),
        retry=retry_if_exception(_is_retryable_exception) | retry_if_result(_is_failed_outcome),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
    )

    if delays[0] > 0:
        await sleep(delays[0])

    try:
        outcome = await retrying(_attempt)
    except ChannelConfigurationError as e:
        logger.error(f"{channel} delivery not attempted: {e.message}", extra={"channel": channel})
        return DeliveryAttemptResult(
            channel=channel,
            success=False,
            error=e.message,
            retries=max(attempts - 1, 0),
        )
    except RetryError as e:
        last = e.last_attempt
        if last.failed:
            error = str(last.exception()) or type(last.exception()).__name__
        else:
            result = last.result()
            error = (result.error if result else None) or "send reported failure"
        logger.error(
            f"{channel} delivery failed after {attempts} attempts: {error}",
            extra={"channel": channel, "attempts": attempts}
        )
        return DeliveryAttemptResult(
            channel=channel,
            success=False,
            error=error,
            retries=attempts - 1,
        )

    return DeliveryAttemptResult(
        channel=channel,
        success=True,
        error=None,
        retries=attempts - 1,
    )
