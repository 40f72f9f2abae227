"""OAuth2 bearer token management for registry calls.

Tokens are obtained with the client-credentials grant (Keycloak style
endpoints by default) and refreshed proactively ``refresh_buffer`` seconds
before they expire. ``TokenManager`` is safe to share between threads:

- the common path reads the cached ``TokenState`` without taking a lock;
- a refresh runs under a lock and re-checks the cached state first, so at
  most one token exchange is in flight and callers that waited on the lock
  reuse the token the winner fetched.

A failed exchange raises ``AuthenticationError`` to the caller that
triggered it and leaves the cache as it was; the next call tries again.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import requests

from .errors import AuthenticationError
from .logging import get_logger
from .models import TokenState

DEFAULT_REFRESH_BUFFER_SECONDS = 30.0
DEFAULT_TOKEN_TIMEOUT_SECONDS = 10.0


class TokenProvider(Protocol):
    def get_valid_token(self) -> str: ...  # pragma: no cover - structural only


@dataclass
class OAuthConfig:
    """Client-credentials settings for the token endpoint."""

    url: str
    realm: str
    client_id: str
    client_secret: str
    token_endpoint: str | None = None

    @property
    def token_url(self) -> str:
        if self.token_endpoint:
            return self.token_endpoint
        return f"{self.url.rstrip('/')}/realms/{self.realm}/protocol/openid-connect/token"

    def is_complete(self) -> bool:
        return bool(
            (self.token_endpoint or (self.url and self.realm))
            and self.client_id
            and self.client_secret
        )


class TokenManager:
    """Caches a bearer token and refreshes it before expiry."""

    def __init__(
        self,
        config: OAuthConfig,
        *,
        session: requests.Session | None = None,
        refresh_buffer: float = DEFAULT_REFRESH_BUFFER_SECONDS,
        clock: Callable[[], float] = time.time,
        timeout: float = DEFAULT_TOKEN_TIMEOUT_SECONDS,
    ):
        self.config = config
        self.refresh_buffer = refresh_buffer
        self.timeout = timeout
        self.logger = get_logger()
        self._session = session or requests.Session()
        self._clock = clock
        self._state: TokenState | None = None
        self._refresh_lock = threading.Lock()
        self.exchange_count = 0

    def _usable(self, state: TokenState | None) -> bool:
        return state is not None and not state.needs_refresh(self._clock(), self.refresh_buffer)

    def get_valid_token(self) -> str:
        state = self._state
        if state is not None and self._usable(state):
            return state.access_token
        return self._refresh_token()

    def _refresh_token(self) -> str:
        with self._refresh_lock:
            # Another caller may have refreshed while this one waited
            state = self._state
            if state is not None and self._usable(state):
                return state.access_token
            new_state = self._request_token()
            self._state = new_state
            return new_state.access_token

    def _request_token(self) -> TokenState:
        token_url = self.config.token_url
        form = {
            "grant_type": "client_credentials",
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        self.exchange_count += 1
        try:
            response = self._session.post(
                token_url,
                data=form,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            self.logger.log_error("Token request failed", error=exc.__class__.__name__)
            raise AuthenticationError(
                f"Network error while requesting token from {token_url}", exc
            ) from exc

        status = response.status_code
        if status >= 400:  # noqa: PLR2004
            raise AuthenticationError(
                f"Failed to obtain access token (HTTP {status}): {response.text[:200]}"
            )
        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise AuthenticationError("Token endpoint returned a non-JSON body", exc) from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        expires_in = payload.get("expires_in") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise AuthenticationError("Token response is missing access_token")
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
            raise AuthenticationError("Token response is missing a numeric expires_in")
        if expires_in <= self.refresh_buffer:
            self.logger.warning(
                "Token lifetime is shorter than the refresh buffer; every call will refresh",
                expires_in=expires_in,
                refresh_buffer=self.refresh_buffer,
            )

        now = self._clock()
        self.logger.log_operation(
            "token_refreshed",
            client_id=self.config.client_id,
            expires_in=expires_in,
        )
        return TokenState(access_token=access_token, expires_at=now + float(expires_in))

    def clear_cache(self) -> None:
        """Drop the cached token so the next call re-authenticates."""
        self._state = None


class StaticTokenProvider:
    """Serves a fixed API key as the bearer token."""

    def __init__(self, api_key: str):
        self._api_key = api_key

    def get_valid_token(self) -> str:
        return self._api_key


def create_token_provider(
    oauth: OAuthConfig | None = None,
    api_key: str | None = None,
    *,
    refresh_buffer: float = DEFAULT_REFRESH_BUFFER_SECONDS,
    session: requests.Session | None = None,
) -> TokenProvider | None:
    """Pick OAuth when configured, then a static key, else unauthenticated (None)."""
    if oauth is not None and oauth.is_complete():
        return TokenManager(oauth, session=session, refresh_buffer=refresh_buffer)
    if api_key:
        return StaticTokenProvider(api_key)
    return None


__all__ = [
    "DEFAULT_REFRESH_BUFFER_SECONDS",
    "OAuthConfig",
    "StaticTokenProvider",
    "TokenManager",
    "TokenProvider",
    "create_token_provider",
]
