"""
eBay OAuth Token Manager

Gets an application token for the Browse API using the Client Credentials
flow and caches it until shortly before it expires.

One manager is shared process-wide. Refreshes are idempotent: two callers
that both see a stale token may both fetch a new one, the last write wins
and either token is usable.
"""

import base64
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx

from sellcheck.config import BROWSE, BrowseConfig
from sellcheck.pipeline.models import utc_now
from .exceptions import CredentialError

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 7200  # eBay application tokens last 2 hours


class EbayTokenManager:
    """
    Usage:
        tokens = EbayTokenManager(client_id, client_secret, http_client=client)
        token = await tokens.get_token()
    """

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        config: BrowseConfig = BROWSE,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.http_client = http_client
        self.config = config
        self.clock = clock

        self._token: Optional[str] = None
        self._expires_at: Optional[datetime] = None
        self._lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def cached_token(self) -> Optional[str]:
        """Return the cached token if it is valid past the safety margin."""
        margin = timedelta(seconds=self.config.token_safety_margin)
        with self._lock:
            if self._token and self._expires_at and self.clock() + margin < self._expires_at:
                return self._token
        return None

    def invalidate(self) -> None:
        """Drop the cached token (e.g. after a 401 from the Browse API)."""
        with self._lock:
            self._token = None
            self._expires_at = None

    async def get_token(self) -> str:
        token = self.cached_token()
        if token:
            return token

        if not self.configured:
            raise CredentialError("Missing eBay API credentials")

        credentials = f"{self.client_id}:{self.client_secret}"
        encoded_credentials = base64.b64encode(credentials.encode()).decode()

        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Authorization": f"Basic {encoded_credentials}",
        }
        data = {
            "grant_type": "client_credentials",
            "scope": self.config.scope,
        }

        try:
            if self.http_client is not None:
                response = await self.http_client.post(
                    self.config.oauth_url, headers=headers, data=data, timeout=self.config.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                    response = await client.post(self.config.oauth_url, headers=headers, data=data)
        except httpx.HTTPError as e:
            logger.error(f"[EBAY OAuth] Token endpoint unreachable: {e}")
            raise CredentialError("eBay OAuth endpoint unreachable", cause=e) from e

        if response.status_code != 200:
            logger.error(f"[EBAY OAuth] Token request failed: {response.status_code} - {response.text[:200]}")
            raise CredentialError(
                f"eBay OAuth failed: {response.status_code}", status_code=response.status_code
            )

        try:
            token_data = response.json()
        except ValueError as e:
            raise CredentialError("eBay OAuth returned invalid JSON", cause=e) from e

        access_token = token_data.get("access_token")
        if not access_token:
            logger.error("[EBAY OAuth] No access_token in response")
            raise CredentialError("eBay OAuth response had no access_token")

        expires_in = int(token_data.get("expires_in") or DEFAULT_EXPIRES_IN)
        with self._lock:
            self._token = access_token
            self._expires_at = self.clock() + timedelta(seconds=expires_in)
        logger.info(f"[EBAY OAuth] Token acquired, expires in {expires_in}s")
        return access_token
