"""
Token bucket rate limiting for the conduit SDK.

A single `RateLimiter` holds one bucket per key, so independent rate domains
(per endpoint, per host, per tenant) can share one limiter instance.

The limiter never rejects a call: when a bucket is empty, `attempt()` blocks
the calling thread until a token becomes available.

Example:
    >>> from conduit._rate_limit import RateLimiter
    >>> limiter = RateLimiter(max_requests=2, per_seconds=1.0)
    >>> limiter.attempt()   # immediate
    True
    >>> limiter.attempt()   # immediate
    True
    >>> limiter.attempt()   # blocks ~0.5s
    True
"""

import logging
import threading
from dataclasses import dataclass

from conduit._clock import SYSTEM_CLOCK, Clock

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
    """Mutable token bucket state (guarded by its key lock)."""

    tokens: float
    last_refill: float


class RateLimiter:
    """
    Keyed token bucket rate limiter.

    Each bucket holds up to `max_requests` tokens and refills continuously at
    `max_requests / per_seconds` tokens per second. Every call consumes one token.

    Thread-safety:
        Each key has its own lock, so the read-refill-write sequence is atomic
        per key. A caller that has to wait keeps its key's lock while sleeping,
        so concurrent callers on the same key queue up behind it. Different keys
        never block each other.

    Args:
        max_requests: Bucket capacity (maximum burst size).
        per_seconds: Time in seconds to refill a full bucket.
        clock: Time source. Inject a fake clock to test without sleeping.
    """

    def __init__(
        self,
        max_requests: int,
        per_seconds: float,
        clock: Clock = SYSTEM_CLOCK,
    ):
        assert max_requests is not None, "max_requests cannot be None."
        assert max_requests > 0, "max_requests must be greater than 0."
        assert per_seconds is not None, "per_seconds cannot be None."
        assert per_seconds > 0, "per_seconds must be greater than 0."
        assert clock is not None, "clock cannot be None."

        self.max_requests = max_requests
        self.per_seconds = per_seconds
        self.clock = clock

        self._buckets: dict[str, _Bucket] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @property
    def refill_rate(self) -> float:
        """Tokens added per second."""
        return self.max_requests / self.per_seconds

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def _projected_tokens(self, bucket: _Bucket, now: float) -> float:
        elapsed = max(0.0, now - bucket.last_refill)
        return min(float(self.max_requests), bucket.tokens + elapsed * self.refill_rate)

    def attempt(self, key: str = "default") -> bool:
        """
        Consume one token for `key`, blocking until one is available.

        Args:
            key: The rate domain. Buckets are created lazily, full.

        Returns:
            Always True. The limiter delays calls, it never rejects them.
        """
        with self._lock_for(key):
            now = self.clock.monotonic()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = self._buckets[key] = _Bucket(tokens=float(self.max_requests), last_refill=now)

            # Refill tokens based on elapsed time
            bucket.tokens = self._projected_tokens(bucket, now)
            bucket.last_refill = now

            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                return True

            # Wait until the missing fraction of a token has been refilled
            wait_time = (1.0 - bucket.tokens) / self.max_requests * self.per_seconds
            logger.debug(
                f"RateLimiter | key={key!r} | Bucket empty, waiting {wait_time:.3f}s for next token."
            )
            self.clock.sleep(wait_time)

            bucket.tokens = 0.0
            bucket.last_refill = self.clock.monotonic()
            return True

    def check(self, key: str = "default") -> bool:
        """
        Return True if a call for `key` would proceed without waiting.

        This is a read-only projection: it does not consume or refill tokens.
        """
        with self._lock_for(key):
            bucket = self._buckets.get(key)
            if bucket is None:
                return True
            return self._projected_tokens(bucket, self.clock.monotonic()) >= 1.0

    def tokens(self, key: str = "default") -> float:
        """Return the currently available (projected) tokens for `key`."""
        with self._lock_for(key):
            bucket = self._buckets.get(key)
            if bucket is None:
                return float(self.max_requests)
            return self._projected_tokens(bucket, self.clock.monotonic())

    def reset(self, key: str = "default") -> None:
        """Delete the bucket and lock for `key`; the next call starts with a full bucket."""
        with self._lock_for(key):
            self._buckets.pop(key, None)
            with self._registry_lock:
                self._key_locks.pop(key, None)
