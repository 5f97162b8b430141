"""Token bucket pacing for outbound HTTP requests.

Bulk dictionary downloads issue one request per shard plus retries; the
bucket keeps them under `dictionary.requests_per_second` so a resumed
download never bursts the shard host.
"""

import asyncio
import time
from collections.abc import Callable

from localcache.core.errors import RateLimitExceeded
from localcache.core.logging import get_logger

logger = get_logger(__name__)

# Default longest wait a caller accepts for tokens
MAX_WAIT_SECONDS = 20.0


class TokenBucket:
    """Async token bucket.

    Tokens refill continuously at `rate` per second up to `capacity`. Waiters
    are served in arrival order because the lock is held while sleeping.

    Example:
        bucket = TokenBucket(rate=5.0, capacity=5)
        await bucket.consume()
    """

    def __init__(
        self,
        rate: float = 1.0,
        capacity: int = 1,
        initial_tokens: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if rate <= 0:
            raise ValueError(f"Token bucket rate must be positive, got {rate}")
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._tokens = float(capacity if initial_tokens is None else initial_tokens)
        self._refilled_at = clock()
        self._lock = asyncio.Lock()

    @property
    def available(self) -> float:
        """Tokens available right now."""
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        self._tokens = min(self.capacity, self._tokens + (now - self._refilled_at) * self.rate)
        self._refilled_at = now

    def _wait_for(self, tokens: int) -> float:
        """Seconds until `tokens` are available, taking them now if they are."""
        self._refill()
        if self._tokens >= tokens:
            self._tokens -= tokens
            return 0.0
        return (tokens - self._tokens) / self.rate

    async def consume(self, tokens: int = 1, max_wait: float | None = MAX_WAIT_SECONDS) -> bool:
        """Take tokens, sleeping until they are available.

        Args:
            tokens: Tokens to take
            max_wait: Longest acceptable wait in seconds; None waits as long
                as the rate requires

        Raises:
            RateLimitExceeded: If more than `capacity` tokens are requested, or
                the wait would exceed max_wait
        """
        if tokens > self.capacity:
            raise RateLimitExceeded(
                f"Requested {tokens} tokens, which exceed bucket capacity {self.capacity}. "
                "Raise dictionary.requests_per_second or request fewer tokens."
            )

        async with self._lock:
            wait = self._wait_for(tokens)
            if wait == 0.0:
                return True

            if max_wait is not None and wait > max_wait:
                logger.warning("Rate limit wait too long", wait_seconds=round(wait, 2), tokens=tokens)
                raise RateLimitExceeded(
                    f"Rate limit would require {wait:.2f}s wait (limit {max_wait:.0f}s). "
                    "Raise dictionary.requests_per_second."
                )

            logger.debug("Waiting for rate limit", wait_seconds=round(wait, 3))
            await asyncio.sleep(wait)
            self._refill()
            self._tokens = max(0.0, self._tokens - tokens)
            return True


_buckets: dict[str, TokenBucket] = {}


def get_bucket(name: str = "default", rate: float = 1.0, capacity: int = 1) -> TokenBucket:
    """Shared bucket per remote service; rate and capacity apply on first use only."""
    bucket = _buckets.get(name)
    if bucket is None:
        bucket = _buckets[name] = TokenBucket(rate=rate, capacity=capacity)
    return bucket


def reset_buckets() -> None:
    """Forget all shared buckets. Primarily for testing."""
    _buckets.clear()
