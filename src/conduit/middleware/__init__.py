"""
Middleware for the conduit HTTP client.

Each middleware wraps the rest of the request pipeline; see `Middleware`.
"""

from conduit.middleware._base import FunctionMiddleware, Handler, Middleware, MiddlewareChain
from conduit.middleware._caching import CachingMiddleware, fingerprint
from conduit.middleware._cookies import CookieMiddleware
from conduit.middleware._events import EventMiddleware
from conduit.middleware._logging import REDACTED, SENSITIVE_HEADERS, LoggingMiddleware, sanitize_headers
from conduit.middleware._rate_limit import RateLimitMiddleware

__all__ = [
    "Handler",
    "Middleware",
    "FunctionMiddleware",
    "MiddlewareChain",
    "CachingMiddleware",
    "fingerprint",
    "CookieMiddleware",
    "EventMiddleware",
    "LoggingMiddleware",
    "sanitize_headers",
    "SENSITIVE_HEADERS",
    "REDACTED",
    "RateLimitMiddleware",
]
