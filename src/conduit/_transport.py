"""
HTTP transport layer for the conduit SDK.

Two layers live here:

- `Transport`: sends exactly one HTTP request and returns one response, or
  raises a TransportError. `RequestsTransport` implements it with `requests`.
- `ResilientTransport`: the terminal stage of the middleware chain. It encodes
  the request body, raises HttpStatusError for 4xx/5xx responses, and applies
  the retry policy around single transport calls.

Example:
    >>> from conduit._transport import RequestsTransport, ResilientTransport
    >>> from conduit._retry import RetryPolicy
    >>> terminal = ResilientTransport(RequestsTransport(timeout=30), RetryPolicy())
    >>> response = terminal(Request.create("GET", "https://api.example.com/users"))
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, override
from urllib.parse import urlencode

import requests

from conduit._clock import SYSTEM_CLOCK, Clock
from conduit._exceptions import HttpStatusError, TransportError, TransportTimeoutError
from conduit._models import HttpMethod, Request, Response
from conduit._retry import RetryPolicy, Retrying

logger = logging.getLogger(__name__)

FORM_PARAMS_KEY = "form_params"


# =============================================================================
# Abstract Base Class
# =============================================================================


class Transport(ABC):
    """
    Sends one HTTP request and returns one HTTP response.

    Implementations must return the response for every HTTP status (including
    4xx/5xx) and raise TransportError only when no response was received.

    Example:
        >>> class StaticTransport(Transport):
        ...     def execute(self, method, url, headers, body=None):
        ...         return Response.build(200, body=b"ok")
    """

    @abstractmethod
    def execute(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes | None = None,
    ) -> Response:
        """
        Execute a single HTTP request.

        Args:
            method: The HTTP method.
            url: The absolute URL, including any query string.
            headers: Request headers.
            body: Encoded request body, if any.

        Returns:
            The HTTP response (any status code).

        Raises:
            TransportTimeoutError: If the connect or read timeout expires.
            TransportError: If the connection fails for any other reason.
        """
        pass

    def close(self) -> None:
        """Release any resources held by the transport."""
        pass


# =============================================================================
# requests Implementation
# =============================================================================


class RequestsTransport(Transport):
    """
    Transport backed by a `requests.Session`.

    Follows redirects and verifies TLS certificates (the `requests` defaults).

    Args:
        timeout: Read timeout in seconds.
        connect_timeout: Connection timeout in seconds.
        session: Optional pre-configured session (proxies, certificates, adapters).
    """

    def __init__(
        self,
        timeout: float = 30,
        connect_timeout: float = 10,
        session: requests.Session | None = None,
    ):
        assert timeout is not None, "Timeout cannot be None."
        assert timeout > 0, "Timeout must be greater than 0."
        assert connect_timeout is not None, "Connect timeout cannot be None."
        assert connect_timeout > 0, "Connect timeout must be greater than 0."

        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self._session = session or requests.Session()

    @override
    def execute(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes | None = None,
    ) -> Response:
        assert url, "URL cannot be empty."

        try:
            http_response = self._session.request(
                method=method,
                url=url,
                headers=dict(headers),
                data=body,
                timeout=(self.connect_timeout, self.timeout),
                allow_redirects=True,
            )
        except requests.Timeout as e:
            raise TransportTimeoutError(f"Request timed out: {e}", cause=e) from e
        except requests.RequestException as e:
            raise TransportError(f"Connection error: {e}", cause=e) from e

        return Response.from_requests(http_response)

    @override
    def close(self) -> None:
        self._session.close()


# =============================================================================
# Request Encoding
# =============================================================================


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    lowered = name.lower()
    return any(key.lower() == lowered for key in headers)


def append_query(url: str, params: Mapping[str, Any]) -> str:
    """Append query parameters to a URL that may already have a query string."""
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params, doseq=True)}"


def encode_request(request: Request) -> tuple[str, dict[str, str], bytes | None]:
    """
    Turn a Request into the URL, headers and body sent on the wire.

    - GET: `data` becomes query parameters, no body.
    - `data["form_params"]` present: form-urlencoded body.
    - Otherwise, non-empty `data` is sent as a JSON body.

    Returns:
        A (url, headers, body) tuple.
    """
    headers = dict(request.headers)

    if request.method is HttpMethod.GET:
        return append_query(request.uri, request.data), headers, None

    if FORM_PARAMS_KEY in request.data:
        if not _has_header(headers, "Content-Type"):
            headers["Content-Type"] = "application/x-www-form-urlencoded"
        body = urlencode(request.data[FORM_PARAMS_KEY], doseq=True).encode("utf-8")
        return request.uri, headers, body

    if request.data:
        if not _has_header(headers, "Content-Type"):
            headers["Content-Type"] = "application/json"
        return request.uri, headers, json.dumps(request.data, default=str).encode("utf-8")

    return request.uri, headers, None


# =============================================================================
# Terminal Stage
# =============================================================================


class ResilientTransport:
    """
    Terminal stage of the middleware chain: a transport call wrapped in retries.

    Each attempt performs one `Transport.execute()` call. Responses with a
    status >= 400 become HttpStatusError; those with a retryable status are
    retried according to the policy. Transport errors are never retried.

    Middleware wrapped around this stage sees one logical call per request,
    however many attempts were made.

    Args:
        transport: The transport performing single HTTP exchanges.
        retry_policy: The retry policy. Defaults to a single attempt.
        clock: Time source used to wait between attempts.
    """

    def __init__(
        self,
        transport: Transport,
        retry_policy: RetryPolicy | None = None,
        clock: Clock = SYSTEM_CLOCK,
    ):
        assert transport is not None, "Transport is required."
        assert clock is not None, "clock cannot be None."

        self.transport = transport
        self.retry_policy = retry_policy or RetryPolicy.no_retry()
        self.clock = clock

    def __call__(self, request: Request) -> Response:
        return self.send(request)

    def send(self, request: Request) -> Response:
        """
        Send the request, retrying on retryable HTTP status codes.

        Returns:
            The first response with a status < 400.

        Raises:
            HttpStatusError: On a non-retryable error status.
            RetriesExhaustedError: When every attempt failed with a retryable status.
            TransportError: On connection failures (not retried).
        """
        url, headers, body = encode_request(request)

        for attempt in Retrying(
            self.retry_policy,
            sleep=self.clock.sleep,
            logger_prefix=f"{request.method} {request.uri}",
        ):
            with attempt as current:
                logger.debug(
                    f"{request.method} {url} | Sending request "
                    f"(attempt {current.attempt_number}/{current.max_attempts})..."
                )
                response = self.transport.execute(str(request.method), url, headers, body)
                if response.status_code >= 400:
                    raise HttpStatusError.from_response(response)
                return response

        # Should never reach here - Retrying raises on the last attempt
        raise RuntimeError(
            "Unexpected error while sending the request: "
            "reached end of retry loop without returning a response."
        )
