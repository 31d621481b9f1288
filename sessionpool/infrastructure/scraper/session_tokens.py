"""
Session token acquisition from an origin's landing page.

An unauthenticated GET of ``https://www.vinted.<origin>/`` answers with
a ``Set-Cookie: access_token_web=...`` header; that token becomes a new
pooled credential.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, TYPE_CHECKING

from sessionpool.domain.entities.credential import Clock, Credential, now_ms
from sessionpool.infrastructure.scraper.utils import find_access_token, origin_base_url
from sessionpool.utils.exceptions import EdgeBlockedError, TokenExtractionError, UnexpectedResponseError
from sessionpool.utils.logger import get_logger

if TYPE_CHECKING:
    from sessionpool.infrastructure.http.hardened_client import HardenedClient

logger = get_logger(__name__)


class SessionTokenFetcher:
    """
    Issues credentials by visiting an origin's landing page.

    Instances are callables suitable as a replenisher's ``fetch_token``.

    Attributes:
        client: Hardened client used for the landing request.
        lifetime: Time-to-live given to issued credentials.
        timeout_seconds: Landing request timeout.
    """

    def __init__(
        self,
        client: "HardenedClient",
        lifetime: timedelta = timedelta(minutes=10),
        timeout_seconds: float = 5.0,
        clock: Optional[Clock] = None,
    ):
        self.client = client
        self.lifetime = lifetime
        self.timeout_seconds = timeout_seconds
        self.clock: Clock = clock or now_ms

    async def __call__(self, origin: str) -> Credential:
        return await self.fetch(origin)

    async def fetch(self, origin: str) -> Credential:
        """
        Fetch one session token for ``origin``.

        Raises:
            TransportError: If the landing request fails outright.
            EdgeBlockedError: If the landing page is blocked (403).
            UnexpectedResponseError: For any other error status.
            TokenExtractionError: If no token cookie was set.
        """
        url = f"{origin_base_url(origin)}/"
        logger.debug(f"Requesting landing page {url}")

        response = await self.client.get(url, origin=origin, timeout=self.timeout_seconds)

        if response.status == 403:
            raise EdgeBlockedError(url=url)
        if response.status >= 400:
            raise UnexpectedResponseError(
                f"Landing page returned HTTP {response.status}",
                url=url,
                status_code=response.status,
            )

        set_cookies = response.set_cookies
        if not set_cookies:
            raise TokenExtractionError("No Set-Cookie header in landing response", url=url)

        token = find_access_token(set_cookies)
        if token is None:
            raise TokenExtractionError("Landing response did not set a session token", url=url)

        logger.debug(f"Extracted session token {token[:8]}... for {origin}")
        return Credential.issue(token, self.lifetime, now=self.clock())
