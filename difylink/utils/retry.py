from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from ..constants import DEFAULT_BASE_DELAY, DEFAULT_JITTER, DEFAULT_MAX_RETRIES
from ..contracts import RetryAttempt
from ..errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def compute_backoff(
    attempt: int, base: float = DEFAULT_BASE_DELAY, jitter: float = DEFAULT_JITTER
) -> float:
    """Compute exponential backoff with jitter.

    ``base * 2**attempt`` plus a uniform draw from ``[0, jitter)``.
    """
    delay = base * (2 ** attempt)
    return delay + random.uniform(0, jitter) if jitter > 0 else delay


class RetryCoordinator:
    """Bounded exponential-backoff retry around a zero-argument coroutine factory.

    Args:
        max_retries: Additional attempts after the first one.
        base_delay: Seconds multiplied by ``2**attempt``.
        jitter: Upper bound in seconds for the random component.
        classify: Returns ``True`` when a failure may be retried.
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        jitter: float = DEFAULT_JITTER,
        classify: Callable[[BaseException], bool] = is_retryable,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.jitter = jitter
        self._classify = classify
        self._sleep = sleep or asyncio.sleep

    async def run(self, request: Callable[[], Awaitable[T]]) -> T:
        """Invoke ``request`` until it succeeds, fails terminally, or retries run out.

        The last failure is re-raised unchanged.
        """
        attempt = 0
        while True:
            try:
                return await request()
            except Exception as exc:
                retryable = self._classify(exc)
                if not retryable or attempt >= self.max_retries:
                    if retryable:
                        logger.error(
                            f"Giving up after {attempt + 1} attempts: {exc}"
                        )
                    raise

                record = RetryAttempt(
                    attempt=attempt,
                    retryable=retryable,
                    delay=compute_backoff(attempt, self.base_delay, self.jitter),
                    error=str(exc),
                )
                logger.warning(
                    f"Attempt {record.attempt + 1} failed ({record.error}); "
                    f"retrying in {record.delay:.2f}s"
                )
                await self._sleep(record.delay)
                attempt += 1
