"""
Retry Policy: Bounded Attempts with Configurable Backoff

Implements the retry strategy used for torn local reads:
- Fixed delay (exponential_base=1.0, no jitter) between attempts
- Hard cap on the number of retries
- Optional exponential backoff with full jitter for other callers

Backend writes are deliberately not retried (best-effort replication).
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration."""

    max_retries: int = 3
    base_delay_ms: int = 100
    max_delay_ms: int = 10000
    exponential_base: float = 2.0
    jitter: bool = True  # Full jitter

    @classmethod
    def default(cls) -> RetryPolicy:
        return cls()

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        """No retries (for non-idempotent operations)."""
        return cls(max_retries=0)

    @classmethod
    def fixed(cls, attempts: int, delay_ms: int) -> RetryPolicy:
        """
        Constant delay between a bounded number of attempts.

        Args:
            attempts: Total attempts, including the first one
            delay_ms: Wait before each retry
        """
        return cls(
            max_retries=max(0, attempts - 1),
            base_delay_ms=delay_ms,
            max_delay_ms=delay_ms,
            exponential_base=1.0,
            jitter=False,
        )

    def with_max_retries(self, max_retries: int) -> RetryPolicy:
        return RetryPolicy(
            max_retries=max(0, max_retries),
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            exponential_base=self.exponential_base,
            jitter=self.jitter,
        )


def calculate_backoff(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    exponential_base: float,
    jitter: bool,
) -> float:
    """
    Calculate backoff delay with optional jitter.

    Full jitter: random(0, min(cap, base * exponential_base^attempt))
    """
    delay = min(max_delay_ms, base_delay_ms * (exponential_base ** attempt))

    if jitter:
        delay = random.uniform(0, delay)

    return delay


class RetryContext:
    """
    Context manager for retry operations.

    Usage:
        async with RetryContext(policy) as ctx:
            for attempt in ctx.attempts():
                outcome = try_read()
                if outcome.is_ok():
                    ctx.success()
                    break
                await ctx.fail(outcome.error)
    """

    __slots__ = ("_policy", "_attempt", "_last_error", "_succeeded")

    def __init__(self, policy: Optional[RetryPolicy] = None) -> None:
        self._policy = policy or RetryPolicy.default()
        self._attempt = 0
        self._last_error: Optional[Exception] = None
        self._succeeded = False

    async def __aenter__(self) -> RetryContext:
        return self

    async def __aexit__(self, *args: Any) -> None:
        pass

    def attempts(self) -> range:
        """Iterator over attempts (first try plus retries)."""
        return range(self._policy.max_retries + 1)

    def success(self) -> None:
        self._succeeded = True

    async def fail(self, error: Exception) -> None:
        """Record failure and wait for backoff unless attempts are used up."""
        self._last_error = error
        self._attempt += 1

        if self._attempt <= self._policy.max_retries:
            delay = calculate_backoff(
                attempt=self._attempt - 1,
                base_delay_ms=self._policy.base_delay_ms,
                max_delay_ms=self._policy.max_delay_ms,
                exponential_base=self._policy.exponential_base,
                jitter=self._policy.jitter,
            )
            logger.debug(f"Retrying in {delay}ms (attempt {self._attempt + 1})")
            await asyncio.sleep(delay / 1000)

    @property
    def failures(self) -> int:
        return self._attempt

    @property
    def exhausted(self) -> bool:
        return not self._succeeded and self._attempt > self._policy.max_retries

    @property
    def succeeded(self) -> bool:
        return self._succeeded

    @property
    def last_error(self) -> Optional[Exception]:
        return self._last_error
