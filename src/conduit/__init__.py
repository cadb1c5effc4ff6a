"""
conduit: a synchronous HTTP client with a composable middleware pipeline.

Quick Start:
    >>> from conduit import ClientBuilder
    >>> client = (
    ...     ClientBuilder()
    ...     .with_base_uri("https://api.example.com")
    ...     .with_bearer_token("my-token")
    ...     .build()
    ... )
    >>> response = client.get("/users", data={"page": 2})
    >>> response.json()

Global Configuration:
    >>> from conduit import CONDUIT
    >>>
    >>> # Pre-loaded with defaults + env vars
    >>> timeout = CONDUIT.config.http.timeout
    >>>
    >>> # Custom configuration
    >>> CONDUIT.configure(
    ...     retry={"max_attempts": 5, "base_delay_ms": 200},
    ...     rate_limit={"enabled": True, "max_requests": 10, "per_seconds": 1},
    ... )

Main Classes:
    - HttpClient: Client running each request through its middleware chain.
    - ClientBuilder: Fluent builder for HttpClient.
    - Request / Response: Immutable request and response values.

Middleware (see `conduit.middleware`):
    - Middleware / MiddlewareChain: The interception contract and its composition.
    - RateLimitMiddleware, CachingMiddleware, CookieMiddleware,
      LoggingMiddleware, EventMiddleware.

Resilience:
    - RetryPolicy / Retrying: Status-code based retries with backoff.
    - RateLimiter: Keyed token bucket that blocks until a token is available.

State:
    - CacheStore / InMemoryCacheStore: TTL key-value store for responses.
    - Cookie / CookieJar: Cookie parsing and storage.
    - EventDispatcher: Synchronous lifecycle event listeners.

Errors:
    - ConduitError and subclasses: TransportError, TransportTimeoutError,
      HttpStatusError, RetriesExhaustedError, DecodeError, ConfigurationError.
"""

from importlib.metadata import version as _get_version

__version__ = _get_version("conduit-http")

from conduit._auth import (
    ApiKeyAuth,
    AuthenticationError,
    AuthProvider,
    BearerTokenAuth,
    ClientCredentialsAuthProvider,
    CustomHeadersAuth,
    NoAuth,
    UserServiceKeyAuth,
)
from conduit._cache import CacheStore, InMemoryCacheStore
from conduit._client import ClientBuilder, HttpClient
from conduit._clock import SYSTEM_CLOCK, Clock, SystemClock
from conduit._config import (
    CONDUIT,
    CacheConfig,
    ConduitConfig,
    ConfigEntry,
    ConfigEnvVarError,
    ConfigValidationError,
    CookiesConfig,
    HttpConfig,
    RateLimitConfig,
    RetryConfig,
    SdkConfig,
)
from conduit._cookies import Cookie, CookieJar
from conduit._events import (
    Event,
    EventDispatcher,
    RequestFailedEvent,
    RequestSendingEvent,
    ResponseReceivedEvent,
)
from conduit._exceptions import (
    ConduitError,
    ConfigurationError,
    DecodeError,
    HttpStatusError,
    RetriesExhaustedError,
    TransportError,
    TransportTimeoutError,
)
from conduit._models import HttpMethod, Request, Response
from conduit._rate_limit import RateLimiter
from conduit._retry import RetryAttempt, Retrying, RetryPolicy
from conduit._transport import RequestsTransport, ResilientTransport, Transport
from conduit.middleware import (
    CachingMiddleware,
    CookieMiddleware,
    EventMiddleware,
    FunctionMiddleware,
    LoggingMiddleware,
    Middleware,
    MiddlewareChain,
    RateLimitMiddleware,
)

__all__ = [
    "__version__",
    # Client
    "HttpClient",
    "ClientBuilder",
    "HttpMethod",
    "Request",
    "Response",
    # Configuration
    "CONDUIT",
    "ConduitConfig",
    "SdkConfig",
    "HttpConfig",
    "RetryConfig",
    "RateLimitConfig",
    "CacheConfig",
    "CookiesConfig",
    "ConfigEntry",
    "ConfigEnvVarError",
    "ConfigValidationError",
    # Authentication
    "AuthProvider",
    "NoAuth",
    "BearerTokenAuth",
    "ApiKeyAuth",
    "UserServiceKeyAuth",
    "CustomHeadersAuth",
    "ClientCredentialsAuthProvider",
    "AuthenticationError",
    # Transport
    "Transport",
    "RequestsTransport",
    "ResilientTransport",
    # Middleware
    "Middleware",
    "FunctionMiddleware",
    "MiddlewareChain",
    "RateLimitMiddleware",
    "CachingMiddleware",
    "CookieMiddleware",
    "LoggingMiddleware",
    "EventMiddleware",
    # Resilience
    "RetryPolicy",
    "Retrying",
    "RetryAttempt",
    "RateLimiter",
    # State
    "CacheStore",
    "InMemoryCacheStore",
    "Cookie",
    "CookieJar",
    "Event",
    "EventDispatcher",
    "RequestSendingEvent",
    "ResponseReceivedEvent",
    "RequestFailedEvent",
    # Time
    "Clock",
    "SystemClock",
    "SYSTEM_CLOCK",
    # Errors
    "ConduitError",
    "TransportError",
    "TransportTimeoutError",
    "HttpStatusError",
    "RetriesExhaustedError",
    "DecodeError",
    "ConfigurationError",
]
