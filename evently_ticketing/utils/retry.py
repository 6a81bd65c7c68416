"""
Retries for operations that lose an optimistic-locking race.

Booking creation reads the event's ``version`` and writes capacity only if
that version is still current; a lost race raises ``ConcurrencyError`` and
the whole operation is replayed against fresh state.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from functools import wraps
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from .exceptions import ConcurrencyError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Backoff:
    """Exponential backoff with full jitter in the upper half of each step."""
    base_delay: float = 0.1
    max_delay: float = 2.0
    factor: float = 2.0
    jitter: bool = True

    def delay(self, retry_number: int) -> float:
        delay = min(self.base_delay * self.factor ** retry_number, self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.0)
        return delay


async def run_with_retries(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    backoff: Backoff,
    retry_on: Tuple[Type[BaseException], ...] = (ConcurrencyError,),
    name: str = "operation",
) -> T:
    """
    Await ``operation()`` up to ``max_attempts`` times.

    Raises:
        The last retryable exception once attempts are exhausted; any other
        exception immediately.
    """
    attempt = 1
    while True:
        try:
            result = await operation()
        except retry_on as e:
            if attempt >= max_attempts:
                logger.error(f"{name} gave up after {attempt} attempts: {e}")
                raise
            wait = backoff.delay(attempt - 1)
            logger.warning(f"{name} attempt {attempt} lost a race ({e}); retrying in {wait:.2f}s")
            await asyncio.sleep(wait)
            attempt += 1
            continue

        if attempt > 1:
            logger.info(f"{name} succeeded on attempt {attempt}")
        return result


def retry_on_concurrency_error(
    max_attempts: int = 3,
    base_delay: float = 0.1,
    max_delay: float = 2.0,
    jitter: bool = True
):
    """Decorator replaying an async method when it raises ``ConcurrencyError``."""
    backoff = Backoff(base_delay=base_delay, max_delay=max_delay, jitter=jitter)

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await run_with_retries(
                lambda: func(*args, **kwargs),
                max_attempts,
                backoff,
                retry_on=(ConcurrencyError, asyncio.TimeoutError),
                name=func.__qualname__,
            )
        return wrapper

    return decorator
