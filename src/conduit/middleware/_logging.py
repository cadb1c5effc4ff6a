"""
Request/response logging middleware.

Example:
    >>> import logging
    >>> logging.basicConfig(level=logging.INFO)
    >>> client.add_middleware(LoggingMiddleware())
"""

import logging
from collections.abc import Mapping
from typing import override

from conduit._clock import SYSTEM_CLOCK, Clock
from conduit._models import Request, Response
from conduit.middleware._base import Handler, Middleware

REDACTED = "***REDACTED***"

SENSITIVE_HEADERS = frozenset({
    "authorization",
    "x-api-key",
    "api-key",
    "token",
    "x-auth-key",
    "x-auth-user-service-key",
    "cookie",
})


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of `headers` with credential-bearing values masked."""
    return {
        name: REDACTED if name.lower() in SENSITIVE_HEADERS else value
        for name, value in headers.items()
    }


class LoggingMiddleware(Middleware):
    """
    Logs each request, its response, and any failure with timing.

    Sensitive headers are masked before logging. Exceptions are logged and
    re-raised unchanged.

    Args:
        logger: Destination logger. Defaults to this module's logger.
        request_level: Level for the outgoing request line.
        response_level: Level for the response line.
        error_level: Level for failures.
        clock: Time source for durations.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        request_level: int = logging.INFO,
        response_level: int = logging.INFO,
        error_level: int = logging.ERROR,
        clock: Clock = SYSTEM_CLOCK,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.request_level = request_level
        self.response_level = response_level
        self.error_level = error_level
        self.clock = clock

    @override
    def handle(self, request: Request, call_next: Handler) -> Response:
        self.logger.log(
            self.request_level,
            f"HTTP Request: {request.method} {request.uri} | "
            f"data={request.data} headers={sanitize_headers(request.headers)}",
        )

        start = self.clock.monotonic()
        try:
            response = call_next(request)
        except Exception as e:
            duration_ms = (self.clock.monotonic() - start) * 1000
            self.logger.log(
                self.error_level,
                f"HTTP Error: {request.method} {request.uri} | "
                f"{type(e).__name__}: {e} ({duration_ms:.2f}ms)",
            )
            raise

        duration_ms = (self.clock.monotonic() - start) * 1000
        self.logger.log(
            self.response_level,
            f"HTTP Response: {request.method} {request.uri} | "
            f"{response.status_code} {response.reason_phrase} ({duration_ms:.2f}ms)",
        )
        return response
