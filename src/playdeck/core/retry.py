"""Bounded retry policy with a fixed delay and an injectable sleep.

Used where a transient condition is expected to clear on its own, such as
a collection manifest that is not yet visible right after an install.

Example:
    >>> policy = RetryPolicy(max_attempts=3, delay=1.0)
    >>> ctx = RetryContext(policy)
    >>> manifest = await ctx.run_async(read_manifest, path)

Tests pass ``sleep=`` a recording coroutine so no real time elapses.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to attempt an operation and how long to wait between.

    Attributes:
        max_attempts: Total attempts, including the first one
        delay: Fixed delay in seconds between attempts
        retry_on: Exception types that are worth retrying
    """

    max_attempts: int = 3
    delay: float = 1.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must be non-negative")

    def should_retry(self, attempts_made: int, error: BaseException | None = None) -> bool:
        """Whether another attempt is allowed after *attempts_made* failures."""
        if attempts_made >= self.max_attempts:
            return False
        if error is not None:
            return isinstance(error, self.retry_on)
        return True

    def next_delay(self, attempts_made: int) -> float:
        return self.delay


@dataclass
class RetryContext:
    """Tracks attempts of one retried operation.

    Example:
        >>> ctx = RetryContext(RetryPolicy(max_attempts=3, delay=0.5))
        >>> result = await ctx.run_async(fetch)
        >>> ctx.attempts
        1
    """

    policy: RetryPolicy
    on_retry: Callable[[int, Exception, float], None] | None = None
    sleep: Sleep = asyncio.sleep
    attempt: int = field(default=0, init=False)
    last_error: Exception | None = field(default=None, init=False)
    started_at: datetime = field(default_factory=utcnow, init=False)
    errors: list[tuple[int, Exception, datetime]] = field(default_factory=list, init=False)

    @property
    def attempts(self) -> int:
        """Number of attempts made."""
        return self.attempt

    async def run_async(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await *func* until it succeeds or the policy gives up.

        Raises:
            The last exception once attempts are exhausted or the error is
            not retryable.
        """
        while True:
            self.attempt += 1
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                self.last_error = e
                self.errors.append((self.attempt, e, utcnow()))

                if not self.policy.should_retry(self.attempt, e):
                    raise

                delay = self.policy.next_delay(self.attempt)
                if self.on_retry:
                    self.on_retry(self.attempt, e, delay)
                await self.sleep(delay)


__all__ = ["RetryPolicy", "RetryContext", "Sleep"]
