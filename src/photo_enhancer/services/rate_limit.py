"""Fixed-window request rate limiting."""

import logging
from dataclasses import dataclass

from photo_enhancer.services.cache import Cache

_logger = logging.getLogger(__name__)


class RateLimitExceededError(Exception):
    """Raised when a caller exceeds its request budget."""

    code = "RATE_LIMITED"

    def __init__(self, key: str, retry_after_seconds: float) -> None:
        self.key = key
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limit exceeded for {key}")


@dataclass
class RateLimiter:
    """Allows ``limit`` hits per key in each ``window_seconds`` window."""

    cache: Cache
    limit: int
    window_seconds: float
    namespace: str = "rate"

    def hit(self, key: str) -> int:
        """Count a request and raise RateLimitExceededError over the limit."""
        count, resets_in = self.cache.increment(
            f"{self.namespace}:{key}", self.window_seconds
        )
        if count > self.limit:
            _logger.warning(
                "Rate limit exceeded", extra={"key": key, "count": count}
            )
            raise RateLimitExceededError(key, resets_in)
        return count
