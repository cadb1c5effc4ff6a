"""
Cookie storage for the conduit SDK.

- Cookie: Immutable cookie parsed from a `Set-Cookie` header.
- CookieJar: Thread-safe collection of cookies keyed by (name, domain, path).

Example:
    >>> jar = CookieJar()
    >>> jar.add_from_headers(["session=abc123; Path=/; Domain=example.com; Max-Age=3600"])
    >>> jar.get_cookie_header("example.com", "/")
    'session=abc123'
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from email.utils import parsedate_to_datetime

from conduit._clock import SYSTEM_CLOCK, Clock


def parse_http_date(value: str) -> float | None:
    """
    Parse an HTTP date (e.g., `Wed, 21 Oct 2026 07:28:00 GMT`) into epoch seconds.

    Returns:
        The timestamp, or None when the value cannot be parsed.
    """
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    return parsed.timestamp()


@dataclass(frozen=True)
class Cookie:
    """
    Represents an HTTP cookie.

    Attributes:
        name: Cookie name.
        value: Cookie value.
        expires: Absolute expiration as Unix epoch seconds, or None for a session cookie.
        path: Path prefix the cookie applies to, or None for any path.
        domain: Domain suffix the cookie applies to (no leading dot), or None for any domain.
        secure: The `Secure` flag.
        http_only: The `HttpOnly` flag.
    """

    name: str
    value: str
    expires: float | None = None
    path: str | None = None
    domain: str | None = None
    secure: bool = False
    http_only: bool = False

    @classmethod
    def from_set_cookie_header(cls, header: str, now: float | None = None) -> Cookie:
        """
        Parse a `Set-Cookie` header value.

        Attribute names are case-insensitive. `Max-Age` takes precedence over
        `Expires`. Unknown attributes are ignored.

        Args:
            header: The header value, e.g. `"id=1; Path=/; HttpOnly"`.
            now: Current epoch time used to resolve `Max-Age`. Defaults to the system clock.

        Example:
            >>> cookie = Cookie.from_set_cookie_header("id=1; Domain=.example.com; Secure")
            >>> cookie.domain, cookie.secure
            ('example.com', True)
        """
        now = SYSTEM_CLOCK.time() if now is None else now

        parts = [part.strip() for part in header.split(";")]
        name, _, value = parts[0].partition("=")

        expires: float | None = None
        max_age_expires: float | None = None
        path: str | None = None
        domain: str | None = None
        secure = False
        http_only = False

        for part in parts[1:]:
            if "=" in part:
                attr_name, _, attr_value = part.partition("=")
                attr_name = attr_name.strip().lower()
                attr_value = attr_value.strip()

                if attr_name == "expires":
                    expires = parse_http_date(attr_value)
                elif attr_name == "max-age":
                    try:
                        max_age_expires = now + int(attr_value)
                    except ValueError:
                        pass
                elif attr_name == "path":
                    path = attr_value or None
                elif attr_name == "domain":
                    domain = attr_value.lstrip(".") or None
            else:
                flag = part.lower()
                if flag == "secure":
                    secure = True
                elif flag == "httponly":
                    http_only = True

        return cls(
            name=name.strip(),
            value=value.strip(),
            expires=max_age_expires if max_age_expires is not None else expires,
            path=path,
            domain=domain,
            secure=secure,
            http_only=http_only,
        )

    @property
    def key(self) -> tuple[str, str, str]:
        """Uniqueness key within a jar: (name, domain, path)."""
        return self.name, self.domain or "", self.path or "/"

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires is None:
            return False
        now = SYSTEM_CLOCK.time() if now is None else now
        return now >= self.expires

    def matches(self, domain: str, path: str) -> bool:
        """
        Check whether the cookie applies to a request domain and path.

        The request domain must end with the cookie domain, and the request
        path must start with the cookie path. Unset attributes match anything.
        """
        if self.domain is not None and not domain.endswith(self.domain):
            return False
        if self.path is not None and not path.startswith(self.path):
            return False
        return True

    def with_domain(self, domain: str) -> Cookie:
        return replace(self, domain=domain)

    def to_header_value(self) -> str:
        return f"{self.name}={self.value}"

    def __str__(self) -> str:
        return self.to_header_value()


class CookieJar:
    """
    Thread-safe cookie container.

    Cookies are keyed by (name, domain, path); adding a cookie with the same
    key replaces the previous one (last write wins).

    Args:
        clock: Time source for expiration checks (wall-clock time).
    """

    def __init__(self, clock: Clock = SYSTEM_CLOCK):
        self.clock = clock
        self._cookies: dict[tuple[str, str, str], Cookie] = {}
        self._lock = threading.Lock()

    def add(self, cookie: Cookie) -> None:
        with self._lock:
            self._cookies[cookie.key] = cookie

    def add_from_headers(self, headers: Iterable[str], default_domain: str | None = None) -> list[Cookie]:
        """
        Parse and store cookies from `Set-Cookie` header values.

        Args:
            headers: The `Set-Cookie` values.
            default_domain: Domain assigned to cookies that carry no `Domain` attribute.

        Returns:
            The cookies that were stored.
        """
        now = self.clock.time()
        stored = []
        for header in headers:
            cookie = Cookie.from_set_cookie_header(header, now=now)
            if not cookie.name:
                continue
            if cookie.domain is None and default_domain:
                cookie = cookie.with_domain(default_domain)
            self.add(cookie)
            stored.append(cookie)
        return stored

    def get_matching_cookies(self, domain: str, path: str) -> list[Cookie]:
        """Return the non-expired cookies matching a request domain and path."""
        now = self.clock.time()
        with self._lock:
            return [
                cookie for cookie in self._cookies.values()
                if not cookie.is_expired(now) and cookie.matches(domain, path)
            ]

    def get_cookie_header(self, domain: str, path: str) -> str | None:
        """
        Build the `Cookie` request header for a domain and path.

        Returns:
            `name=value` pairs joined with `"; "`, or None when no cookie matches.
        """
        cookies = self.get_matching_cookies(domain, path)
        if not cookies:
            return None
        return "; ".join(cookie.to_header_value() for cookie in cookies)

    def clear(self) -> None:
        with self._lock:
            self._cookies.clear()

    def remove_expired(self) -> None:
        now = self.clock.time()
        with self._lock:
            self._cookies = {
                key: cookie for key, cookie in self._cookies.items()
                if not cookie.is_expired(now)
            }

    def all(self) -> list[Cookie]:
        with self._lock:
            return list(self._cookies.values())

    def count(self) -> int:
        with self._lock:
            return len(self._cookies)

    def __len__(self) -> int:
        return self.count()
