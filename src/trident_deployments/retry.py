"""Retry helpers for transient remote failures."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from .exceptions import TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class Backoff:
    """Exponential backoff parameters."""

    attempts: int = 4
    base_delay: float = 1.0  # seconds before the second attempt
    factor: float = 2.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return min(self.base_delay * (self.factor ** (attempt - 1)), self.max_delay)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 4,
    base_delay: float = 1.0,
    factor: float = 2.0,
    max_delay: float = 30.0,
    retry_on: Tuple[Type[BaseException], ...] = (TransientNetworkError,),
    sleep: Optional[Sleep] = None,
    description: str = "call",
) -> T:
    """
    Await ``fn()`` until it succeeds, retrying listed exceptions.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt
        attempts: Maximum number of attempts (at least 1)
        base_delay: Delay before the second attempt, in seconds
        factor: Multiplier applied to the delay after every failure
        max_delay: Upper bound for a single delay
        retry_on: Exception types that trigger another attempt
        sleep: Awaitable sleep function (asyncio.sleep by default)
        description: Label used in log messages

    Returns:
        The result of the first successful attempt

    Raises:
        The last retryable exception once attempts are exhausted; any other
        exception immediately
    """
    sleep = sleep or asyncio.sleep
    backoff = Backoff(max(attempts, 1), base_delay, factor, max_delay)

    for attempt in range(1, backoff.attempts + 1):
        try:
            return await fn()
        except retry_on as e:
            if attempt >= backoff.attempts:
                logger.warning("%s failed after %d attempts: %s", description, attempt, e)
                raise
            delay = backoff.delay(attempt)
            logger.info(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                description, attempt, backoff.attempts, e, delay,
            )
            await sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover


async def retry_with(backoff: Backoff, fn: Callable[[], Awaitable[T]], **kwargs) -> T:
    """Run retry_async with parameters taken from a Backoff."""
    return await retry_async(
        fn,
        attempts=backoff.attempts,
        base_delay=backoff.base_delay,
        factor=backoff.factor,
        max_delay=backoff.max_delay,
        **kwargs,
    )
