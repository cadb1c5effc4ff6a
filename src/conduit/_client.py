"""
HTTP client and fluent builder.

The client resolves each URI against its base URI, merges default and
authentication headers, and runs the request through its middleware chain.
The innermost stage sends the request through the transport with retries.

Example:
    >>> from conduit import ClientBuilder
    >>> client = (
    ...     ClientBuilder()
    ...     .with_base_uri("https://api.example.com")
    ...     .with_bearer_token("my-token")
    ...     .with_cache(default_ttl=60)
    ...     .build()
    ... )
    >>> users = client.get_json("/users", data={"page": 1})
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Self

from conduit._auth import (
    ApiKeyAuth,
    AuthProvider,
    BearerTokenAuth,
    ClientCredentialsAuthProvider,
    CustomHeadersAuth,
    NoAuth,
    UserServiceKeyAuth,
)
from conduit._cache import CacheStore, InMemoryCacheStore
from conduit._clock import SYSTEM_CLOCK, Clock
from conduit._config import CONDUIT
from conduit._cookies import CookieJar
from conduit._events import EventDispatcher
from conduit._exceptions import ConfigurationError
from conduit._models import HttpMethod, Request, Response
from conduit._rate_limit import RateLimiter
from conduit._retry import RetryPolicy
from conduit._transport import RequestsTransport, ResilientTransport, Transport
from conduit.middleware import (
    CachingMiddleware,
    CookieMiddleware,
    EventMiddleware,
    LoggingMiddleware,
    Middleware,
    MiddlewareChain,
    RateLimitMiddleware,
)

logger = logging.getLogger(__name__)


def resolve_uri(base_uri: str, uri: str) -> str:
    """
    Join `uri` onto `base_uri`, unless `uri` is already absolute.

    Example:
        >>> resolve_uri("https://api.example.com/", "/users")
        'https://api.example.com/users'
        >>> resolve_uri("https://api.example.com", "https://other.example.com/x")
        'https://other.example.com/x'
    """
    if uri.startswith(("http://", "https://")):
        return uri
    return f"{base_uri.rstrip('/')}/{uri.lstrip('/')}"


class HttpClient:
    """
    Synchronous HTTP client with a middleware pipeline.

    Each call builds an immutable Request and passes it through the middleware
    chain in registration order. The innermost stage performs the transport
    call with the retry policy, so middleware observes one logical call per
    request. Responses with a status >= 400 raise HttpStatusError.

    Args:
        base_uri: Base URI prepended to relative request URIs.
        auth: Authentication provider. Defaults to NoAuth.
        transport: The transport. Defaults to a RequestsTransport using the timeouts.
        retry_policy: The retry policy. Defaults to `CONDUIT.config.retry`.
        timeout: Read timeout in seconds. Defaults to `CONDUIT.config.http.timeout`.
        connect_timeout: Connect timeout in seconds. Defaults to `CONDUIT.config.http.connect_timeout`.
        user_agent: Default User-Agent header. Defaults to `CONDUIT.config.http.user_agent`.
        clock: Time source for retry delays.
        middleware: Initial middleware, outermost first.
    """

    def __init__(
        self,
        base_uri: str,
        auth: AuthProvider | None = None,
        transport: Transport | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
        connect_timeout: float | None = None,
        user_agent: str | None = None,
        clock: Clock = SYSTEM_CLOCK,
        middleware: Iterable[Middleware] = (),
    ):
        assert base_uri, "base_uri cannot be empty."

        cfg = CONDUIT.config
        self.base_uri = base_uri
        self.auth = auth or NoAuth()
        self.timeout = timeout if timeout is not None else cfg.http.timeout
        self.connect_timeout = connect_timeout if connect_timeout is not None else cfg.http.connect_timeout
        self.user_agent = user_agent or cfg.http.user_agent

        assert self.timeout > 0, "timeout must be greater than 0."
        assert self.connect_timeout > 0, "connect_timeout must be greater than 0."

        self.transport = transport or RequestsTransport(
            timeout=self.timeout,
            connect_timeout=self.connect_timeout,
        )
        self.retry_policy = retry_policy or cfg.retry.to_policy()
        self._terminal = ResilientTransport(self.transport, self.retry_policy, clock=clock)
        self._chain = MiddlewareChain(middleware)

    # -------------------------------------------------------------------------
    # Middleware
    # -------------------------------------------------------------------------

    def add_middleware(self, middleware: Middleware) -> Self:
        """Append a middleware; it runs inside all previously added ones."""
        self._chain.add(middleware)
        return self

    @property
    def middleware(self) -> tuple[Middleware, ...]:
        return self._chain.middleware

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def default_headers(self) -> dict[str, str]:
        """Headers sent with every request; auth headers are resolved on each call."""
        return {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
            **self.auth.get_auth_headers(),
        }

    def request(
        self,
        method: str | HttpMethod,
        uri: str,
        data: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """
        Send a request through the middleware chain.

        Args:
            method: GET, POST, PUT, PATCH or DELETE (case-insensitive).
            uri: Relative to the base URI, or absolute.
            data: Query parameters for GET, body for other methods.
            headers: Extra headers; they win over the default ones.

        Returns:
            A response with a status < 400.

        Raises:
            ConfigurationError: If the method is not supported.
            HttpStatusError: On a 4xx/5xx response (RetriesExhaustedError after retries).
            TransportError: On connection failures or timeouts.
        """
        assert uri is not None, "uri cannot be None."

        request = Request.create(
            method=method,
            uri=resolve_uri(self.base_uri, uri),
            data=data,
            headers={**self.default_headers(), **(headers or {})},
        )
        return self._chain.execute(request, self._terminal)

    def get(self, uri: str, data: Mapping[str, Any] | None = None, headers: Mapping[str, str] | None = None) -> Response:
        return self.request(HttpMethod.GET, uri, data, headers)

    def post(self, uri: str, data: Mapping[str, Any] | None = None, headers: Mapping[str, str] | None = None) -> Response:
        return self.request(HttpMethod.POST, uri, data, headers)

    def put(self, uri: str, data: Mapping[str, Any] | None = None, headers: Mapping[str, str] | None = None) -> Response:
        return self.request(HttpMethod.PUT, uri, data, headers)

    def patch(self, uri: str, data: Mapping[str, Any] | None = None, headers: Mapping[str, str] | None = None) -> Response:
        return self.request(HttpMethod.PATCH, uri, data, headers)

    def delete(self, uri: str, data: Mapping[str, Any] | None = None, headers: Mapping[str, str] | None = None) -> Response:
        return self.request(HttpMethod.DELETE, uri, data, headers)

    # -------------------------------------------------------------------------
    # JSON helpers
    # -------------------------------------------------------------------------

    def get_json(self, uri: str, data: Mapping[str, Any] | None = None, headers: Mapping[str, str] | None = None) -> Any:
        """GET and decode the JSON body (None when empty; DecodeError when malformed)."""
        return self.get(uri, data, headers).json()

    def post_json(self, uri: str, data: Mapping[str, Any] | None = None, headers: Mapping[str, str] | None = None) -> Any:
        return self.post(uri, data, headers).json()

    def put_json(self, uri: str, data: Mapping[str, Any] | None = None, headers: Mapping[str, str] | None = None) -> Any:
        return self.put(uri, data, headers).json()

    def patch_json(self, uri: str, data: Mapping[str, Any] | None = None, headers: Mapping[str, str] | None = None) -> Any:
        return self.patch(uri, data, headers).json()

    def delete_json(self, uri: str, data: Mapping[str, Any] | None = None, headers: Mapping[str, str] | None = None) -> Any:
        return self.delete(uri, data, headers).json()

    def close(self) -> None:
        """Release the transport's pooled connections."""
        self.transport.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"HttpClient(base_uri={self.base_uri!r}, middleware={len(self._chain)})"


class ClientBuilder:
    """
    Fluent builder for HttpClient.

    Middleware is added in call order, so the first `with_*` middleware call
    produces the outermost wrapper.

    Example:
        >>> client = (
        ...     ClientBuilder()
        ...     .with_base_uri("https://api.example.com")
        ...     .with_api_key("me@example.com", "key")
        ...     .with_retry_policy(RetryPolicy(max_attempts=5))
        ...     .with_logging()
        ...     .with_rate_limit(max_requests=10, per_seconds=1)
        ...     .build()
        ... )
    """

    def __init__(self, clock: Clock = SYSTEM_CLOCK) -> None:
        self._clock = clock
        self._base_uri: str | None = None
        self._auth: AuthProvider | None = None
        self._timeout: float | None = None
        self._connect_timeout: float | None = None
        self._retry_policy: RetryPolicy | None = None
        self._transport: Transport | None = None
        self._middleware: list[Middleware] = []

    @classmethod
    def from_config(cls, clock: Clock = SYSTEM_CLOCK) -> ClientBuilder:
        """
        Return a builder pre-populated with the middleware enabled in `CONDUIT.config`.

        Adds, in this order and only when enabled: rate limiting, cookies, caching.
        """
        cfg = CONDUIT.config
        builder = cls(clock=clock)

        if cfg.rate_limit.enabled:
            builder.with_rate_limit(
                max_requests=cfg.rate_limit.max_requests,
                per_seconds=cfg.rate_limit.per_seconds,
                key=cfg.rate_limit.key,
            )
        if cfg.cookies.enabled:
            builder.with_cookies()
        if cfg.cache.enabled:
            builder.with_cache(
                default_ttl=cfg.cache.default_ttl,
                cacheable_methods=cfg.cache.cacheable_methods,
            )

        return builder

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    def with_base_uri(self, base_uri: str) -> Self:
        self._base_uri = base_uri
        return self

    def with_timeout(self, timeout: float) -> Self:
        assert timeout > 0, "timeout must be greater than 0."
        self._timeout = timeout
        return self

    def with_connect_timeout(self, connect_timeout: float) -> Self:
        assert connect_timeout > 0, "connect_timeout must be greater than 0."
        self._connect_timeout = connect_timeout
        return self

    def with_retry_policy(self, retry_policy: RetryPolicy) -> Self:
        self._retry_policy = retry_policy
        return self

    def with_transport(self, transport: Transport) -> Self:
        self._transport = transport
        return self

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    def with_auth(self, auth: AuthProvider) -> Self:
        self._auth = auth
        return self

    def with_bearer_token(self, token: str) -> Self:
        return self.with_auth(BearerTokenAuth(token))

    def with_api_key(self, email: str, api_key: str) -> Self:
        return self.with_auth(ApiKeyAuth(email, api_key))

    def with_user_service_key(self, user_service_key: str) -> Self:
        return self.with_auth(UserServiceKeyAuth(user_service_key))

    def with_custom_headers(self, headers: Mapping[str, str]) -> Self:
        return self.with_auth(CustomHeadersAuth(headers))

    def with_client_credentials(self, client_id: str, client_secret: str, token_url: str) -> Self:
        return self.with_auth(ClientCredentialsAuthProvider(
            client_id=client_id,
            client_secret=client_secret,
            token_url=token_url,
            clock=self._clock,
        ))

    def without_auth(self) -> Self:
        return self.with_auth(NoAuth())

    # -------------------------------------------------------------------------
    # Middleware
    # -------------------------------------------------------------------------

    def with_middleware(self, middleware: Middleware) -> Self:
        self._middleware.append(middleware)
        return self

    def with_rate_limit(
        self,
        max_requests: int,
        per_seconds: float,
        key: str | Callable[[Request], str] = "default",
        limiter: RateLimiter | None = None,
    ) -> Self:
        """Add rate limiting; pass `limiter` to share buckets across clients."""
        limiter = limiter or RateLimiter(max_requests, per_seconds, clock=self._clock)
        return self.with_middleware(RateLimitMiddleware(limiter, key=key))

    def with_cache(
        self,
        store: CacheStore | None = None,
        default_ttl: int | None = None,
        cacheable_methods: Iterable[str] | None = None,
    ) -> Self:
        cfg = CONDUIT.config.cache
        return self.with_middleware(CachingMiddleware(
            store=store or InMemoryCacheStore(clock=self._clock),
            default_ttl=default_ttl if default_ttl is not None else cfg.default_ttl,
            cacheable_methods=cacheable_methods or cfg.cacheable_methods,
            clock=self._clock,
        ))

    def with_cookies(self, jar: CookieJar | None = None) -> Self:
        return self.with_middleware(CookieMiddleware(jar or CookieJar(clock=self._clock)))

    def with_logging(self, logger: logging.Logger | None = None) -> Self:
        return self.with_middleware(LoggingMiddleware(logger=logger, clock=self._clock))

    def with_events(self, dispatcher: EventDispatcher) -> Self:
        return self.with_middleware(EventMiddleware(dispatcher, clock=self._clock))

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------

    def build(self) -> HttpClient:
        """
        Create the configured HttpClient.

        Raises:
            ConfigurationError: If no base URI was set.
        """
        if not self._base_uri:
            raise ConfigurationError("Base URI is required; call with_base_uri() before build().")

        if self._auth is None:
            logger.debug("No authentication configured; using NoAuth.")

        return HttpClient(
            base_uri=self._base_uri,
            auth=self._auth or NoAuth(),
            transport=self._transport,
            retry_policy=self._retry_policy,
            timeout=self._timeout,
            connect_timeout=self._connect_timeout,
            clock=self._clock,
            middleware=self._middleware,
        )
