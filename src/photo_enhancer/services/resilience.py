"""Deadline and retry helpers for external calls."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from photo_enhancer.errors import EnhancementError, StepTimeoutError

T = TypeVar("T")

_logger = logging.getLogger(__name__)


async def run_with_timeout(awaitable: Awaitable[T], seconds: float, *, step: str) -> T:
    """Await with a hard deadline, raising StepTimeoutError when it passes."""
    try:
        async with asyncio.timeout(seconds):
            return await awaitable
    except TimeoutError as exc:
        raise StepTimeoutError(step, seconds) from exc


@dataclass(frozen=True)
class RetryConfig:
    """Retry parameters for one kind of external call."""

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_multiplier: float = 2.0
    per_attempt_timeout: float = 45.0
    max_jitter: float = 0.5

    def delay_before(self, attempt: int) -> float:
        """Base backoff before ``attempt`` (2-based), without jitter."""
        return self.base_delay * self.backoff_multiplier ** (attempt - 2)


def is_retryable(exc: Exception) -> bool:
    """Classify an exception for retry purposes.

    Errors outside the enhancement taxonomy (transport failures, SDK errors)
    are treated as transient.
    """
    if isinstance(exc, EnhancementError):
        return exc.retryable
    return True


@dataclass
class RetryPolicy:
    """Exponential backoff with jitter around a single external call."""

    config: RetryConfig = field(default_factory=RetryConfig)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    jitter: Callable[[float], float] = field(
        default=lambda upper: random.uniform(0.0, upper)  # noqa: S311
    )

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        step: str,
        deadline: float | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds, fails fatally or runs out of attempts.

        ``deadline`` is an event-loop time. Attempts are cut short at the
        deadline and no backoff sleep is started that would overrun it.
        """
        loop = asyncio.get_running_loop()
        attempt = 0
        while True:
            attempt += 1
            timeout = self.config.per_attempt_timeout
            if deadline is not None:
                timeout = max(0.0, min(timeout, deadline - loop.time()))
            try:
                return await run_with_timeout(operation(), timeout, step=step)
            except Exception as exc:
                delay = self.config.delay_before(attempt + 1) + self.jitter(
                    self.config.max_jitter
                )
                will_retry = is_retryable(exc) and attempt < self.config.max_attempts
                if will_retry and deadline is not None:
                    will_retry = loop.time() + delay < deadline
                _logger.warning(
                    "%s failed (attempt %s/%s, retry=%s): %s",
                    step,
                    attempt,
                    self.config.max_attempts,
                    will_retry,
                    exc,
                )
                if not will_retry:
                    raise
                await self.sleep(delay)
