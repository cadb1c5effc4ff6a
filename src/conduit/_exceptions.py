"""
Exception hierarchy for the conduit SDK.

All errors raised by the request pipeline extend `ConduitError`:

    ConduitError
    ├── TransportError              connection, DNS or protocol failure (never retried)
    │   └── TransportTimeoutError   connect or read timeout
    ├── HttpStatusError             the server answered with a 4xx/5xx status
    │   └── RetriesExhaustedError   a retryable status persisted on every attempt
    ├── DecodeError                 a payload could not be decoded
    └── ConfigurationError          invalid method name, missing builder field, etc.

Example:
    >>> try:
    ...     client.get("/users/42")
    ... except HttpStatusError as e:
    ...     print(e.status_code, e)
    ... except TransportError as e:
    ...     print(f"Network problem: {e}")
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from conduit._models import Response


class ConduitError(Exception):
    """Base class for all conduit errors."""

    pass


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(ConduitError):
    """
    Raised when the transport cannot complete the HTTP exchange.

    Covers connection refusals, DNS failures, TLS and protocol errors. The
    retry policy only looks at HTTP status codes, so these errors are never
    retried and always propagate on the first occurrence.

    Attributes:
        cause: The underlying exception raised by the transport library, if any.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class TransportTimeoutError(TransportError):
    """Raised when a connect or read timeout expires."""

    pass


# =============================================================================
# HTTP Errors
# =============================================================================


class HttpStatusError(ConduitError):
    """
    Raised when the server responds with a status code >= 400.

    Attributes:
        response: The HTTP response that carried the error status.
        status_code: Shortcut for `response.status_code`.
        code: Application error code extracted from a JSON error body (0 when absent).

    Example:
        >>> try:
        ...     client.get("/missing")
        ... except HttpStatusError as e:
        ...     assert e.status_code == 404
    """

    def __init__(self, response: Response, message: str | None = None, code: int = 0):
        self.response = response
        self.code = code
        super().__init__(message or f"HTTP {response.status_code} {response.reason_phrase}".rstrip())

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @classmethod
    def from_response(cls, response: Response) -> HttpStatusError:
        """
        Build an error from a response, preferring the API's own error message.

        When the body is JSON with a non-empty `errors` list, the first error's
        `message` and `code` are used. Otherwise the message is `HTTP <status> <reason>`.

        Args:
            response: The error response.

        Returns:
            A new HttpStatusError instance.
        """
        if "application/json" in response.header_line("Content-Type") and response.body:
            try:
                payload = json.loads(response.body)
            except ValueError:
                return cls(response)

            errors = payload.get("errors") if isinstance(payload, dict) else None
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                first = errors[0]
                message = first.get("message")
                try:
                    code = int(first.get("code") or 0)
                except (TypeError, ValueError):
                    code = 0
                if message:
                    return cls(response, message=str(message), code=code)

        return cls(response)


class RetriesExhaustedError(HttpStatusError):
    """
    Raised when every attempt ended with a retryable status code.

    Keeps the status code, message and response of the final failure, so
    callers can keep catching `HttpStatusError`.

    Attributes:
        attempts: Number of attempts that were made.
        last_exception: The HttpStatusError from the last attempt.
    """

    def __init__(self, last_exception: HttpStatusError, attempts: int):
        super().__init__(last_exception.response, message=str(last_exception), code=last_exception.code)
        self.attempts = attempts
        self.last_exception = last_exception


# =============================================================================
# Decoding & Configuration Errors
# =============================================================================


class DecodeError(ConduitError, ValueError):
    """Raised when a response or cached payload cannot be decoded."""

    pass


class ConfigurationError(ConduitError, ValueError):
    """Raised synchronously when the client is misconfigured or misused."""

    pass
