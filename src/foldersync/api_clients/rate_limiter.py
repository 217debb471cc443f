"""Exponential backoff for rate-limited provider calls."""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

from ..exceptions import RateLimitError
from ..utils.logging import get_logger

T = TypeVar("T")


class BackoffPolicy:
    """Retries an async block while the provider answers with a rate limit."""

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 32.0,
        jitter: float = 0.5,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None
    ):
        """Initialize backoff policy.

        Args:
            max_attempts: Total attempts including the first one
            base_delay: Delay before the second attempt, doubled per attempt
            max_delay: Upper bound for any single delay
            jitter: Random extra delay in [0, jitter); must stay below base_delay
                so delays never shrink between attempts
            sleep: Coroutine used to wait, replaceable in tests
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = min(jitter, base_delay * 0.99)
        self.sleep = sleep or asyncio.sleep
        self.quota_hits = 0

        self.logger = get_logger(self.__class__.__name__)

    @classmethod
    def from_settings(cls, retry_settings, **kwargs) -> "BackoffPolicy":
        return cls(
            max_attempts=retry_settings.max_attempts,
            base_delay=retry_settings.base_delay_seconds,
            max_delay=retry_settings.max_delay_seconds,
            jitter=retry_settings.jitter_seconds,
            **kwargs
        )

    def compute_delay(self, attempt: int, jitter_value: Optional[float] = None) -> float:
        """Delay to wait after the given failed attempt (1-based)."""
        if jitter_value is None:
            jitter_value = random.uniform(0, self.jitter)
        exponential = self.base_delay * (2 ** (attempt - 1))
        return min(self.max_delay, exponential + jitter_value)

    async def run(self, operation: str, block: Callable[[], Awaitable[T]]) -> T:
        """Run block, retrying on RateLimitError up to max_attempts."""
        attempt = 1
        while True:
            try:
                return await block()
            except RateLimitError as e:
                self.quota_hits += 1
                if attempt >= self.max_attempts:
                    self.logger.error(
                        "Rate limit retries exhausted",
                        operation=operation,
                        attempts=attempt
                    )
                    raise

                delay = self.compute_delay(attempt)
                if e.retry_after is not None:
                    delay = min(self.max_delay, max(delay, e.retry_after))

                self.logger.warning(
                    "Rate limited, backing off",
                    operation=operation,
                    attempt=attempt,
                    delay=round(delay, 3)
                )
                await self.sleep(delay)
                attempt += 1
