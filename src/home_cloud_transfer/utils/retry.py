"""Retry helpers for idempotent remote calls."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


def backoff_delay(
    attempt: int,
    *,
    base_delay_s: float,
    max_delay_s: float,
    jitter_s: float,
) -> float:
    """Return the pause after failed attempt number ``attempt`` (1-based).

    A zero base delay disables backoff entirely, jitter included.
    """
    if base_delay_s <= 0:
        return 0.0
    delay = min(max_delay_s, base_delay_s * (2 ** (attempt - 1)))
    return delay + random.uniform(0, jitter_s)


async def wait_unless_stopped(delay_s: float, stop: asyncio.Event | None) -> bool:
    """Sleep for ``delay_s`` seconds, waking early once ``stop`` is set.

    Returns:
        True if ``stop`` was set before the delay elapsed.
    """
    if stop is None:
        await asyncio.sleep(delay_s)
        return False
    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay_s)
    except TimeoutError:
        return False
    return True


async def retry_async[T](
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    base_delay_s: float = 0.5,
    max_delay_s: float = 20.0,
    jitter_s: float = 0.25,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    stop: asyncio.Event | None = None,
    label: str = "remote call",
) -> T:
    """Retry an async function with exponential backoff.

    Backoff waits on ``stop``: once it is set no further attempt is made and
    the last error propagates, so the caller decides what a stop means.

    Args:
        fn: Async callable to execute.
        attempts: Number of attempts before giving up.
        base_delay_s: Base delay in seconds.
        max_delay_s: Maximum delay between attempts.
        jitter_s: Random jitter added to delay.
        retry_on: Exception types to retry on.
        stop: Event that ends the retries early (the run's cancel event).
        label: What is being retried, for log lines.

    Returns:
        Result of the callable.

    Raises:
        BaseException: The last retryable error once retries end.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= attempts:
                raise
            delay = backoff_delay(
                attempt,
                base_delay_s=base_delay_s,
                max_delay_s=max_delay_s,
                jitter_s=jitter_s,
            )
            logger.warning(
                "%s failed (attempt %s/%s), retrying in %.1fs: %s",
                label,
                attempt,
                attempts,
                delay,
                exc,
            )
            if await wait_unless_stopped(delay, stop):
                logger.info("Stopped retrying %s", label)
                raise
    raise ValueError("attempts must be at least 1")
