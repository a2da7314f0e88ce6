"""
OAuth2 client-credentials authentication.

The TokenManager owns the bearer token for one client instance. It hands
out the cached token while it is still inside its validity window and
performs a single exchange against ``{site}/oauth2/token`` otherwise.

Refreshes are serialized behind an ``asyncio.Lock``: when several
coroutines find the token expired at the same time, the first performs
the exchange and the rest reuse its result.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

import httpx
import pydantic
import structlog

from vectra_saas.config import DEFAULT_TOKEN_MARGIN_SECONDS, normalize_site_url
from vectra_saas.exceptions import AuthError, ValidationError
from vectra_saas.models import TokenResponse

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Site URL and OAuth client credentials. Immutable."""

    site_url: str
    client_id: str
    secret: str

    def __post_init__(self) -> None:
        if not self.client_id or not self.secret:
            raise ValidationError("client_id and secret are required")
        object.__setattr__(self, "site_url", normalize_site_url(self.site_url))

    def __repr__(self) -> str:
        return f"Credentials(site_url={self.site_url!r}, client_id={self.client_id!r}, secret='***')"

    @property
    def basic_auth(self) -> tuple[str, str]:
        return (self.client_id, self.secret)

    @property
    def token_url(self) -> str:
        return f"{self.site_url}/oauth2/token"


@dataclass(frozen=True)
class Token:
    """A bearer token and the instant after which it must not be used."""

    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at

    def __repr__(self) -> str:
        return f"Token(value='***', expires_at={self.expires_at})"


class TokenManager:
    """
    Owns the bearer token for a client instance.

    Example:
        manager = TokenManager(credentials, lambda: http_client)
        token = await manager.ensure_valid()
        headers = {"Authorization": f"Bearer {token.value}"}
    """

    def __init__(
        self,
        credentials: Credentials,
        http_client: Callable[[], httpx.AsyncClient],
        margin_seconds: int = DEFAULT_TOKEN_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            credentials: Site URL and client credentials
            http_client: Returns the pooled httpx client to use for the exchange
            margin_seconds: Subtracted from ``expires_in`` so a token is never
                used while it is about to expire mid-flight
            clock: Returns the current time in epoch seconds
        """
        if margin_seconds < 0:
            raise ValidationError("margin_seconds cannot be negative")

        self.credentials = credentials
        self.margin_seconds = margin_seconds
        self._http_client = http_client
        self._clock = clock
        self._token: Token | None = None
        self._lock = asyncio.Lock()

        self.exchange_count = 0

        self._log = logger.bind(site=credentials.site_url)

    @property
    def token(self) -> Token | None:
        return self._token

    def invalidate(self, token: Token | None = None) -> None:
        """
        Forget the cached token; the next call performs an exchange.

        When ``token`` is given the cache is cleared only if it still holds
        that token, so a rejection of a stale token never discards one a
        concurrent call has just refreshed.
        """
        if token is None or self._token is token:
            self._token = None

    def _current(self) -> Token | None:
        token = self._token
        if token is not None and token.is_valid(self._clock()):
            return token
        return None

    async def ensure_valid(self) -> Token:
        """
        Return a token that is valid right now.

        Raises:
            AuthError: If the exchange fails
        """
        token = self._current()
        if token is not None:
            return token

        async with self._lock:
            # Another coroutine may have refreshed while we waited.
            token = self._current()
            if token is not None:
                return token

            self._token = await self._exchange()
            return self._token

    async def _exchange(self) -> Token:
        self.exchange_count += 1
        self._log.debug("Requesting token", exchange=self.exchange_count)

        try:
            response = await self._http_client().post(
                self.credentials.token_url,
                auth=self.credentials.basic_auth,
                data={"grant_type": "client_credentials"},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.TransportError as e:
            self._log.warning("Token request failed", error=type(e).__name__)
            raise AuthError(f"Token request failed: {e}") from e

        if not response.is_success:
            self._log.warning("Token request rejected", status_code=response.status_code)
            raise AuthError(
                f"Token request rejected: {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            data = TokenResponse.model_validate(response.json())
        except (ValueError, pydantic.ValidationError) as e:
            raise AuthError(
                f"Invalid token response: {e}", status_code=response.status_code
            ) from e

        now = self._clock()
        # Never negative: a short-lived token is simply refreshed on next use.
        expires_at = max(now, now + data.expires_in - self.margin_seconds)

        self._log.info(
            "Token refreshed",
            expires_in=data.expires_in,
            valid_for=round(expires_at - now),
        )
        return Token(value=data.access_token, expires_at=expires_at)
