"""Authentication state and authenticators.

An AuthState is an immutable snapshot of the credentials used for one
request. Authenticators own the current snapshot and replace it wholesale
when it has to be refreshed:
- AnonymousAuthenticator: no credentials, public feeds only
- TokenAuthenticator: a caller-supplied bearer or legacy token
- ServiceAccountAuthenticator: short-lived tokens minted from a service
  account key via google-auth
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timezone
from enum import Enum
from pathlib import Path
from typing import Any

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from extrafeed.config import FEED_SCOPE
from extrafeed.exceptions import InvalidCredentialsError

logger = logging.getLogger(__name__)


class AuthKind(str, Enum):
    ANONYMOUS = "anonymous"
    BEARER = "bearer"
    LEGACY = "legacy"


@dataclass(frozen=True)
class AuthState:
    """Credentials attached to a request.

    Attributes:
        kind: How the token is presented to the server.
        token: Access token, None when anonymous.
        expires_at: Unix timestamp when the token expires, None if unknown.
    """

    kind: AuthKind = AuthKind.ANONYMOUS
    token: str | None = None
    expires_at: float | None = None

    @classmethod
    def anonymous(cls) -> AuthState:
        return cls()

    @classmethod
    def bearer(cls, token: str, expires_at: float | None = None) -> AuthState:
        return cls(AuthKind.BEARER, token, expires_at)

    @classmethod
    def legacy(cls, token: str) -> AuthState:
        return cls(AuthKind.LEGACY, token)

    @property
    def is_authenticated(self) -> bool:
        return self.kind is not AuthKind.ANONYMOUS and bool(self.token)

    def is_expired(self, buffer_seconds: int = 0, now: float | None = None) -> bool:
        """Check whether the token is past (or within buffer of) its expiry.

        Tokens without a known expiry never expire.
        """
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return now >= self.expires_at - buffer_seconds

    def authorization_header(self) -> str | None:
        """Value of the Authorization header, None when anonymous."""
        if not self.is_authenticated:
            return None
        if self.kind is AuthKind.BEARER:
            return f"Bearer {self.token}"
        return f"GoogleLogin auth={self.token}"


class Authenticator(ABC):
    """Holds the current AuthState and knows how to renew it."""

    refreshes: bool = False

    def __init__(self, refresh_buffer: int = 60) -> None:
        self._refresh_buffer = refresh_buffer

    @property
    @abstractmethod
    def state(self) -> AuthState:
        """The current credentials snapshot."""
        ...

    def is_expired(self) -> bool:
        """True if a refreshing authenticator has no usable token."""
        if not self.refreshes:
            return False
        state = self.state
        return not state.is_authenticated or state.is_expired(self._refresh_buffer)

    async def refresh(self) -> AuthState:
        """Obtain a new snapshot. Non-refreshing authenticators return the current one."""
        return self.state

    async def ensure_valid(self) -> AuthState:
        """Return a snapshot that is safe to send, refreshing if needed."""
        if self.is_expired():
            return await self.refresh()
        return self.state


class AnonymousAuthenticator(Authenticator):
    """Sends no credentials."""

    @property
    def state(self) -> AuthState:
        return AuthState.anonymous()


class TokenAuthenticator(Authenticator):
    """Uses a token obtained elsewhere.

    Args:
        token: The access token.
        kind: BEARER for OAuth2 access tokens, LEGACY for GoogleLogin tokens.
        expires_at: Optional expiry; an expired static token is still sent,
            the server decides whether to accept it.
    """

    def __init__(
        self,
        token: str,
        kind: AuthKind = AuthKind.BEARER,
        expires_at: float | None = None,
    ) -> None:
        super().__init__()
        if kind is AuthKind.ANONYMOUS:
            raise ValueError("TokenAuthenticator needs a bearer or legacy kind")
        self._state = AuthState(kind, token, expires_at)

    @property
    def state(self) -> AuthState:
        return self._state


class RefreshingAuthenticator(Authenticator):
    """Base class for authenticators that periodically mint new tokens.

    Concurrent requests that find the token expired share a single refresh:
    the first one refreshes under a lock, the others wait for it and then
    reuse its result.
    """

    refreshes = True

    def __init__(self, refresh_buffer: int = 60) -> None:
        super().__init__(refresh_buffer)
        self._state = AuthState.anonymous()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> AuthState:
        return self._state

    async def refresh(self) -> AuthState:
        """Fetch a new token, coalescing concurrent callers."""
        stale = self._state
        async with self._lock:
            if self._state is not stale and not self.is_expired():
                return self._state
            self._state = await self._fetch_token()
            return self._state

    @abstractmethod
    async def _fetch_token(self) -> AuthState:
        """Obtain a fresh snapshot from the token source."""
        ...


class ServiceAccountAuthenticator(RefreshingAuthenticator):
    """Mints bearer tokens from a service account key.

    Args:
        credentials: Parsed service account JSON, or a path to the key file.
        refresh_buffer: Seconds before expiry at which to refresh.

    Raises:
        InvalidCredentialsError: If the key file is missing or the key is
            malformed.
    """

    def __init__(
        self,
        credentials: dict[str, Any] | str | Path,
        refresh_buffer: int = 60,
    ) -> None:
        super().__init__(refresh_buffer)
        info = _load_service_account_info(credentials)

        try:
            self._credentials = service_account.Credentials.from_service_account_info(
                info, scopes=[FEED_SCOPE]
            )
        except (GoogleAuthError, ValueError, KeyError, TypeError) as e:
            raise InvalidCredentialsError(f"Invalid service account key: {e}") from e

    @property
    def service_account_email(self) -> str:
        return str(self._credentials.service_account_email)

    async def _fetch_token(self) -> AuthState:
        logger.info("Refreshing access token for %s", self.service_account_email)
        try:
            await asyncio.to_thread(self._credentials.refresh, Request())
        except (GoogleAuthError, ValueError) as e:
            raise InvalidCredentialsError(f"Service account authorization failed: {e}") from e

        expiry = self._credentials.expiry
        # google-auth reports expiry as a naive UTC datetime
        expires_at = expiry.replace(tzinfo=timezone.utc).timestamp() if expiry else None
        return AuthState.bearer(self._credentials.token, expires_at)


def _load_service_account_info(credentials: dict[str, Any] | str | Path) -> dict[str, Any]:
    if isinstance(credentials, dict):
        return credentials

    path = Path(credentials)
    if not path.exists():
        raise InvalidCredentialsError(f"Service account file not found: {path}")
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidCredentialsError(f"Could not read service account file {path}: {e}") from e
    if not isinstance(data, dict):
        raise InvalidCredentialsError(f"Service account file {path} is not a JSON object")
    return data
