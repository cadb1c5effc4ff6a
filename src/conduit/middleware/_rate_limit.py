"""
Rate limiting middleware backed by a keyed token bucket.
"""

from collections.abc import Callable
from typing import override

from conduit._models import Request, Response
from conduit._rate_limit import RateLimiter
from conduit.middleware._base import Handler, Middleware


class RateLimitMiddleware(Middleware):
    """
    Waits for a rate limit token before letting the request through.

    Args:
        limiter: The (possibly shared) rate limiter.
        key: The bucket key, or a function deriving it from the request
            (e.g., per host or per endpoint).

    Example:
        >>> limiter = RateLimiter(max_requests=2, per_seconds=1)
        >>> client.add_middleware(RateLimitMiddleware(limiter))
        >>> # One bucket per host:
        >>> client.add_middleware(RateLimitMiddleware(limiter, key=lambda r: urlsplit(r.uri).netloc))
    """

    def __init__(self, limiter: RateLimiter, key: str | Callable[[Request], str] = "default"):
        assert limiter is not None, "Rate limiter is required."
        assert key, "key cannot be empty."

        self.limiter = limiter
        self.key = key

    def key_for(self, request: Request) -> str:
        return self.key(request) if callable(self.key) else self.key

    @override
    def handle(self, request: Request, call_next: Handler) -> Response:
        self.limiter.attempt(self.key_for(request))
        return call_next(request)
