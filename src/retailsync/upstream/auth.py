"""
KiotViet OAuth2 client-credentials token handling.

The token endpoint returns ``{"access_token": ..., "expires_in": <seconds>}``.
Tokens are cached in memory and refreshed a minute before they expire, or
immediately after ``invalidate()`` (called by the client on HTTP 401).
"""
import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from retailsync.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

SCOPES = "PublicApi.Access"
EXPIRY_MARGIN_SECONDS = 60


class TokenProvider:
    """Fetches and caches an access token for the KiotViet public API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        http: httpx.AsyncClient,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self._http = http
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        """Return a valid token, requesting a new one when needed.

        Raises:
            AuthenticationError: if the token endpoint rejects the credentials
                or answers without an access token.
        """
        async with self._lock:
            if self._token and self._clock() < self._expires_at:
                return self._token
            await self._refresh()
            return self._token

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def _refresh(self) -> None:
        try:
            response = await self._http.post(
                self.token_url,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "client_credentials",
                    "scopes": SCOPES,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"Token request failed: {exc}") from exc

        if response.status_code != 200:
            raise AuthenticationError(
                f"Token request rejected: {response.text}", status_code=response.status_code
            )

        payload = response.json()
        token = payload.get("access_token")
        if not token:
            raise AuthenticationError("Token response has no access_token")

        expires_in = float(payload.get("expires_in", 3600))
        self._token = token
        self._expires_at = self._clock() + max(expires_in - EXPIRY_MARGIN_SECONDS, 0)
        logger.info("Obtained KiotViet access token (expires in %ds)", int(expires_in))
