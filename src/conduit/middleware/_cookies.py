"""
Cookie session middleware.

Attaches matching cookies from a CookieJar to outgoing requests and stores
cookies from `Set-Cookie` response headers.
"""

import logging
from typing import override
from urllib.parse import urlsplit

from conduit._cookies import CookieJar
from conduit._exceptions import HttpStatusError
from conduit._models import Request, Response
from conduit.middleware._base import Handler, Middleware

logger = logging.getLogger(__name__)


class CookieMiddleware(Middleware):
    """
    Maintains session cookies transparently.

    Before the request: sends `Cookie: a=1; b=2` with every non-expired cookie
    whose domain is a suffix of the request host and whose path is a prefix of
    the request path.

    After the response: stores every `Set-Cookie` value (last write wins).
    Cookies without a `Domain` attribute are scoped to the request host.
    Error responses (HttpStatusError) are inspected too before re-raising.

    Args:
        jar: The cookie jar, usually shared across requests.
    """

    def __init__(self, jar: CookieJar | None = None):
        self.jar = jar if jar is not None else CookieJar()

    @override
    def handle(self, request: Request, call_next: Handler) -> Response:
        parsed = urlsplit(request.uri)
        domain = parsed.hostname or ""
        path = parsed.path or "/"

        cookies = self.jar.get_matching_cookies(domain, path)
        if cookies:
            logger.debug(f"{request.method} {request.uri} | Attaching cookies: {[c.name for c in cookies]}")
            request = request.with_header("Cookie", "; ".join(c.to_header_value() for c in cookies))

        try:
            response = call_next(request)
        except HttpStatusError as e:
            self._store_cookies(e.response, domain)
            raise

        self._store_cookies(response, domain)
        return response

    def _store_cookies(self, response: Response, domain: str) -> None:
        set_cookie_headers = response.header("Set-Cookie")
        if not set_cookie_headers:
            return
        stored = self.jar.add_from_headers(set_cookie_headers, default_domain=domain or None)
        logger.debug(f"Stored {len(stored)} cookie(s) from response: {[c.name for c in stored]}")
