"""
Data models for the conduit request pipeline.

This module contains the value objects that flow through the middleware chain:
- HttpMethod: Enum of supported HTTP methods
- Request: Immutable request descriptor (method, uri, data, headers)
- Response: Immutable HTTP response with case-insensitive, multi-valued headers

Middleware never mutates these objects; it derives modified copies instead:

    >>> request = Request.create("get", "https://api.example.com/users")
    >>> traced = request.with_header("X-Trace-Id", "abc")
    >>> request.headers
    {}
"""

from __future__ import annotations

import enum
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from http import HTTPStatus
from typing import Any

import requests
from requests.structures import CaseInsensitiveDict

from conduit._exceptions import ConfigurationError, DecodeError


class HttpMethod(enum.StrEnum):
    """HTTP methods accepted by the client."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | HttpMethod) -> HttpMethod:
        """
        Parse a method name case-insensitively.

        Raises:
            ConfigurationError: If the name is not one of GET, POST, PUT, PATCH or DELETE.
        """
        if isinstance(value, HttpMethod):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ConfigurationError(
                f"Request method must be GET, POST, PUT, PATCH, or DELETE (got {value!r})."
            ) from None


@dataclass(frozen=True)
class Request:
    """
    Represents an outgoing HTTP request as seen by the middleware chain.

    Attributes:
        method: The HTTP method.
        uri: The request URI. The client resolves it to an absolute URL before
            it enters the chain.
        data: Query parameters (GET) or body payload (other methods). Keys are unique.
        headers: Request headers.

    Example:
        >>> request = Request.create("POST", "https://api.example.com/items", data={"name": "x"})
        >>> request.method
        <HttpMethod.POST: 'POST'>
    """

    method: HttpMethod
    uri: str
    data: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        assert self.uri, "Request URI can not be empty."

    @classmethod
    def create(
        cls,
        method: str | HttpMethod,
        uri: str,
        data: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Request:
        """Build a request, validating the method name."""
        return cls(
            method=HttpMethod.parse(method),
            uri=uri,
            data=dict(data or {}),
            headers=dict(headers or {}),
        )

    def with_uri(self, uri: str) -> Request:
        return replace(self, uri=uri)

    def with_data(self, data: Mapping[str, Any]) -> Request:
        return replace(self, data=dict(data))

    def with_headers(self, headers: Mapping[str, str]) -> Request:
        """Return a copy with `headers` merged over the current ones."""
        return replace(self, headers={**self.headers, **headers})

    def with_header(self, name: str, value: str) -> Request:
        return self.with_headers({name: value})

    def header(self, name: str) -> str | None:
        """Return a request header value, looked up case-insensitively."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


def _normalize_headers(
    headers: Mapping[str, str | Iterable[str]] | None,
) -> CaseInsensitiveDict[list[str]]:
    normalized: CaseInsensitiveDict[list[str]] = CaseInsensitiveDict()
    for name, value in (headers or {}).items():
        values = [value] if isinstance(value, str) else [str(v) for v in value]
        if name in normalized:
            normalized[name] = normalized[name] + values
        else:
            normalized[name] = values
    return normalized


@dataclass(frozen=True)
class Response:
    """
    Represents an HTTP response.

    Header names are case-insensitive and each header maps to the list of
    values received, so repeated headers such as `Set-Cookie` are preserved.

    Attributes:
        status_code: The HTTP status code.
        headers: Case-insensitive mapping of header name to list of values.
        body: The raw response payload.
        reason_phrase: The HTTP reason phrase (e.g., "OK").

    Example:
        >>> response = Response.build(200, {"Content-Type": "application/json"}, b'{"id": 1}')
        >>> response.header_line("content-type")
        'application/json'
        >>> response.json()
        {'id': 1}
    """

    status_code: int
    headers: CaseInsensitiveDict[list[str]] = field(default_factory=CaseInsensitiveDict)
    body: bytes = b""
    reason_phrase: str = ""

    @classmethod
    def build(
        cls,
        status_code: int,
        headers: Mapping[str, str | Iterable[str]] | None = None,
        body: bytes | str = b"",
        reason_phrase: str | None = None,
    ) -> Response:
        """
        Build a response, normalizing headers and body.

        Args:
            status_code: The HTTP status code.
            headers: Header values as strings or lists of strings.
            body: Payload as bytes or text (text is UTF-8 encoded).
            reason_phrase: Reason phrase. Defaults to the standard phrase for the status.
        """
        if reason_phrase is None:
            try:
                reason_phrase = HTTPStatus(status_code).phrase
            except ValueError:
                reason_phrase = "Unknown"

        return cls(
            status_code=status_code,
            headers=_normalize_headers(headers),
            body=body.encode("utf-8") if isinstance(body, str) else body,
            reason_phrase=reason_phrase,
        )

    @classmethod
    def from_requests(cls, response: requests.Response) -> Response:
        """
        Convert a `requests.Response` into a conduit Response.

        `requests` folds repeated headers into one comma-joined value, which
        breaks `Set-Cookie`. When the underlying urllib3 headers are available
        their individual values are used instead.
        """
        raw_headers = getattr(response.raw, "headers", None)
        if raw_headers is not None and hasattr(raw_headers, "getlist"):
            headers: dict[str, list[str]] = {name: raw_headers.getlist(name) for name in raw_headers.keys()}
        else:
            headers = {name: [value] for name, value in response.headers.items()}

        return cls.build(
            status_code=response.status_code,
            headers=headers,
            body=response.content or b"",
            reason_phrase=response.reason or None,
        )

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def has_header(self, name: str) -> bool:
        return name in self.headers

    def header(self, name: str) -> list[str]:
        """Return all values of a header (empty list when absent)."""
        return list(self.headers.get(name, []))

    def header_line(self, name: str) -> str:
        """Return all values of a header joined with ', '."""
        return ", ".join(self.header(name))

    def with_header(self, name: str, value: str | Iterable[str]) -> Response:
        """Return a copy with the header replaced."""
        headers = CaseInsensitiveDict(self.headers)
        headers[name] = [value] if isinstance(value, str) else list(value)
        return replace(self, headers=headers)

    def json(self) -> Any:
        """
        Decode the body as JSON.

        Returns:
            The decoded value, or None for an empty body.

        Raises:
            DecodeError: If the body is not valid JSON.
        """
        if not self.body:
            return None
        try:
            return json.loads(self.body)
        except ValueError as e:
            raise DecodeError(f"Failed to decode JSON response: {e}") from e
