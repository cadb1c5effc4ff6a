"""
Response caching middleware.

Serves repeated requests for cacheable methods from a CacheStore instead of
calling the rest of the chain.

Example:
    >>> from conduit import InMemoryCacheStore
    >>> from conduit.middleware import CachingMiddleware
    >>> client.add_middleware(CachingMiddleware(InMemoryCacheStore(), default_ttl=60))
"""

import hashlib
import json
import logging
import re
from collections.abc import Iterable
from typing import override

from conduit._cache import CacheStore
from conduit._clock import SYSTEM_CLOCK, Clock
from conduit._cookies import parse_http_date
from conduit._models import Request, Response
from conduit.middleware._base import Handler, Middleware

logger = logging.getLogger(__name__)

_MAX_AGE_PATTERN = re.compile(r"max-age\s*=\s*(\d+)", re.IGNORECASE)
_NO_STORE_PATTERN = re.compile(r"(^|[,\s])no-store($|[,\s;])", re.IGNORECASE)


def fingerprint(request: Request) -> str:
    """
    Compute a stable cache key from method, URI and data.

    Data is serialized with sorted keys so logically identical requests
    produce the same key regardless of insertion order.
    """
    canonical_data = json.dumps(request.data, sort_keys=True, separators=(",", ":"), default=str)
    raw = f"{str(request.method).upper()}|{request.uri}|{canonical_data}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class CachingMiddleware(Middleware):
    """
    Short-circuits cacheable requests with a previously stored response.

    Only 2xx responses are stored. The TTL comes from, in order of priority:
        1. `Cache-Control: max-age=N`
        2. `Expires` (converted to seconds from now, never negative)
        3. `default_ttl`

    Responses marked `Cache-Control: no-store` are not stored.

    Args:
        store: The cache store.
        default_ttl: TTL in seconds when the response carries no freshness headers.
        cacheable_methods: Methods eligible for caching (case-insensitive).
        clock: Time source for converting `Expires` dates.
    """

    def __init__(
        self,
        store: CacheStore,
        default_ttl: int = 300,
        cacheable_methods: Iterable[str] = ("GET",),
        clock: Clock = SYSTEM_CLOCK,
    ):
        assert store is not None, "Cache store is required."
        assert default_ttl is not None, "default_ttl cannot be None."
        assert default_ttl >= 0, "default_ttl must be >= 0."

        self.store = store
        self.default_ttl = default_ttl
        self.cacheable_methods = frozenset(str(m).upper() for m in cacheable_methods)
        self.clock = clock

    @override
    def handle(self, request: Request, call_next: Handler) -> Response:
        if str(request.method).upper() not in self.cacheable_methods:
            return call_next(request)

        cache_key = fingerprint(request)

        cached = self.store.get(cache_key)
        if isinstance(cached, Response):
            logger.debug(f"{request.method} {request.uri} | Cache hit ({cache_key[:12]}).")
            return cached

        logger.debug(f"{request.method} {request.uri} | Cache miss ({cache_key[:12]}).")
        response = call_next(request)

        if not response.is_success:
            logger.debug(
                f"{request.method} {request.uri} | Not caching response with status {response.status_code}."
            )
            return response

        if _NO_STORE_PATTERN.search(response.header_line("Cache-Control")):
            logger.debug(f"{request.method} {request.uri} | Not caching response marked no-store.")
            return response

        ttl = self._ttl_from_response(response)
        if ttl is None:
            ttl = self.default_ttl

        self.store.set(cache_key, response, ttl)
        logger.debug(f"{request.method} {request.uri} | Cached response for {ttl}s.")
        return response

    def _ttl_from_response(self, response: Response) -> int | None:
        """Return the TTL in seconds advertised by the response, if any."""
        match = _MAX_AGE_PATTERN.search(response.header_line("Cache-Control"))
        if match:
            return int(match.group(1))

        expires = response.header_line("Expires")
        if expires:
            expires_at = parse_http_date(expires)
            if expires_at is not None:
                return max(0, int(expires_at - self.clock.time()))

        return None
