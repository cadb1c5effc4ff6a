"""
Authentication providers for the conduit SDK.

An AuthProvider turns credentials into request headers. The client asks for
the headers on every request, so providers that refresh tokens stay valid.

Providers:
- NoAuth: no headers at all (the client default).
- BearerTokenAuth: `Authorization: Bearer <token>`.
- ApiKeyAuth: `X-Auth-Email` + `X-Auth-Key`.
- UserServiceKeyAuth: `X-Auth-User-Service-Key`.
- CustomHeadersAuth: arbitrary static headers.
- ClientCredentialsAuthProvider: OAuth2 client credentials grant with token reuse.

Example:
    >>> from conduit._auth import BearerTokenAuth
    >>> auth = BearerTokenAuth("my-token")
    >>> auth.get_auth_headers()
    {'Authorization': 'Bearer my-token'}
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import override

import requests

from conduit._clock import SYSTEM_CLOCK, Clock
from conduit._exceptions import ConduitError

# =============================================================================
# Exceptions
# =============================================================================


class AuthenticationError(ConduitError):
    """
    Raised when a provider cannot produce credentials, e.g. the token endpoint
    rejected the client or returned an unusable payload.

    Attributes:
        message: Human readable reason.
        cause: The `requests` or decoding error behind it, when there is one.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


# =============================================================================
# Abstract Base Class
# =============================================================================


class AuthProvider(ABC):
    """
    Source of authentication headers, queried once per outgoing request.

    Implementations may be shared by several clients and threads.

    Example:
        >>> class TenantAuth(AuthProvider):
        ...     def get_auth_headers(self) -> dict[str, str]:
        ...         return {"X-Tenant-Token": "secret"}
    """

    @abstractmethod
    def get_auth_headers(self) -> dict[str, str]:
        """
        Return the headers that authenticate a request.

        Raises:
            AuthenticationError: If credentials cannot be obtained.
        """
        pass


# =============================================================================
# Static Header Implementations
# =============================================================================


class NoAuth(AuthProvider):
    """Authentication provider that adds no headers."""

    @override
    def get_auth_headers(self) -> dict[str, str]:
        return {}


class BearerTokenAuth(AuthProvider):
    """API token sent as a Bearer authorization header."""

    def __init__(self, token: str):
        assert token, "token cannot be empty"
        self._token = token

    @override
    def get_auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}


class ApiKeyAuth(AuthProvider):
    """Account email plus API key headers."""

    def __init__(self, email: str, api_key: str):
        assert email, "email cannot be empty"
        assert api_key, "api_key cannot be empty"
        self._email = email
        self._api_key = api_key

    @override
    def get_auth_headers(self) -> dict[str, str]:
        return {
            "X-Auth-Email": self._email,
            "X-Auth-Key": self._api_key,
        }


class UserServiceKeyAuth(AuthProvider):
    """User service key header."""

    def __init__(self, user_service_key: str):
        assert user_service_key, "user_service_key cannot be empty"
        self._user_service_key = user_service_key

    @override
    def get_auth_headers(self) -> dict[str, str]:
        return {"X-Auth-User-Service-Key": self._user_service_key}


class CustomHeadersAuth(AuthProvider):
    """Static, caller-supplied headers."""

    def __init__(self, headers: Mapping[str, str]):
        assert headers is not None, "headers cannot be None"
        self._headers = dict(headers)

    @override
    def get_auth_headers(self) -> dict[str, str]:
        return dict(self._headers)


# =============================================================================
# OAuth2 Client Credentials
# =============================================================================


@dataclass
class TokenInfo:
    """An access token and the wall-clock second at which it stops being accepted."""

    access_token: str
    expires_at: float

    def expires_within(self, seconds: float, now: float) -> bool:
        return now >= self.expires_at - seconds


class ClientCredentialsAuthProvider(AuthProvider):
    """
    Bearer token obtained through the OAuth2 `client_credentials` grant.

    The token is requested lazily on first use and reused until it is within
    `refresh_margin` seconds of expiring. Concurrent callers share one fetch.

    Example:
        >>> auth = ClientCredentialsAuthProvider(
        ...     client_id="billing-service",
        ...     client_secret=os.environ["BILLING_SECRET"],
        ...     token_url="https://idm.example.com/oauth/token",
        ... )
        >>> client = HttpClient("https://api.example.com", auth=auth)

    Args:
        client_id: Client identifier registered with the identity provider.
        client_secret: Secret paired with `client_id`.
        token_url: Token endpoint that accepts form-encoded grant requests.
        refresh_margin: How early (seconds) a token is considered stale.
        timeout: Seconds to wait on the token endpoint.
        clock: Wall-clock source used for expiry checks.
    """

    DEFAULT_REFRESH_MARGIN = 60
    DEFAULT_EXPIRES_IN = 1199

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        refresh_margin: int = DEFAULT_REFRESH_MARGIN,
        timeout: float = 30,
        clock: Clock = SYSTEM_CLOCK,
    ):
        assert client_id, "client_id cannot be empty"
        assert client_secret, "client_secret cannot be empty"
        assert token_url, "token_url cannot be empty"

        self._grant = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
        }
        self._token_url = token_url
        self._refresh_margin = refresh_margin
        self._timeout = timeout
        self._clock = clock

        self._token: TokenInfo | None = None
        self._token_lock = threading.Lock()

    def get_access_token(self) -> str:
        """
        Return the cached token, requesting a fresh one when it is missing or stale.

        Raises:
            AuthenticationError: If the token endpoint call fails.
        """
        with self._token_lock:
            token = self._token
            if token is None or token.expires_within(self._refresh_margin, self._clock.time()):
                token = self._token = self._request_token()
            return token.access_token

    @override
    def get_auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.get_access_token()}"}

    def _request_token(self) -> TokenInfo:
        try:
            response = requests.post(
                self._token_url,
                data=dict(self._grant),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
            if not isinstance(payload, dict):
                raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
            return TokenInfo(
                access_token=payload["access_token"],
                expires_at=self._clock.time() + float(payload.get("expires_in", self.DEFAULT_EXPIRES_IN)),
            )
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            raise AuthenticationError(f"Failed to obtain access token (HTTP {status}): {e}", cause=e) from e
        except requests.RequestException as e:
            raise AuthenticationError(f"Failed to obtain access token: {e}", cause=e) from e
        except (KeyError, TypeError, ValueError) as e:
            raise AuthenticationError(f"Invalid token response: {e}", cause=e) from e
