"""
Vinted API consumers built on the credential pool.

Each logical operation (one catalog page, one item lookup) runs inside
a bounded retry loop: draw a random credential, call the API with it,
and on failure draw again. When the origin reports the token itself as
invalid (an error code inside an otherwise successful response), that
token is removed from the pool before the next draw.

Example:
    >>> async with create_api_client() as api:
    ...     page = await api.search_catalog("co.uk", "nike joggers")
    ...     item = await api.fetch_item_from_url(
    ...         "https://www.vinted.co.uk/items/5731915289-nike-joggers"
    ...     )
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, TypeVar

from sessionpool.core.credential_pool import CredentialPool
from sessionpool.core.replenisher import Replenisher
from sessionpool.domain.entities.credential import Credential
from sessionpool.infrastructure.http.hardened_client import HardenedClient, HttpResponse
from sessionpool.infrastructure.scraper.rate_limiter import create_rate_limiter_from_config
from sessionpool.infrastructure.scraper.session_tokens import SessionTokenFetcher
from sessionpool.infrastructure.scraper.utils import (
    extract_item_id_from_url,
    origin_base_url,
    origin_from_url,
    token_cookie,
)
from sessionpool.infrastructure.storage.snapshot_store import JsonSnapshotStore
from sessionpool.utils.config import AppConfig, get_config
from sessionpool.utils.exceptions import (
    ApplicationInvalidTokenError,
    AuthRejectedError,
    EdgeBlockedError,
    ResponseParsingError,
    ScraperError,
    UnexpectedResponseError,
)
from sessionpool.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Error code / message code Vinted embeds in a 200 body for a dead token
INVALID_TOKEN_CODE = 100
INVALID_TOKEN_MESSAGE_CODE = "invalid_authentication_token"

API_ACCEPT = "application/json, text/plain, */*"


def is_invalid_token_payload(payload: Any) -> bool:
    """True if a decoded response body carries the invalid-token signal."""
    if not isinstance(payload, dict):
        return False
    return (
        payload.get("code") == INVALID_TOKEN_CODE
        or payload.get("message_code") == INVALID_TOKEN_MESSAGE_CODE
    )


class VintedApiClient:
    """
    Authorized access to the Vinted JSON API.

    Attributes:
        http: Hardened client used for every call.
        pool: Credential pool supplying session tokens.
        max_attempts: Attempts per logical operation.
        per_page: Default catalog page size.
    """

    def __init__(
        self,
        http: HardenedClient,
        pool: CredentialPool,
        max_attempts: int = 3,
        per_page: int = 96,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.http = http
        self.pool = pool
        self.max_attempts = max_attempts
        self.per_page = per_page

    async def __aenter__(self) -> "VintedApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http.close()

    # =========================================
    # Retry Loop
    # =========================================

    async def with_credential(
        self,
        origin: str,
        call: Callable[[Credential], Awaitable[T]],
    ) -> T:
        """
        Run ``call`` with a freshly drawn credential until it succeeds.

        ApplicationInvalidTokenError invalidates the credential used before
        retrying; any other ScraperError retries with a new draw and no
        invalidation.

        Args:
            origin: Origin key to draw credentials for.
            call: Coroutine function performing the API call.

        Returns:
            The result of the first successful call.

        Raises:
            PoolExhaustedError: If no credential can be drawn.
            ScraperError: The last error once ``max_attempts`` is used up.
        """
        last_error: Optional[ScraperError] = None

        for attempt in range(1, self.max_attempts + 1):
            credential = await self.pool.draw(origin)
            try:
                return await call(credential)
            except ApplicationInvalidTokenError as e:
                last_error = e
                # The client may have rotated the drawn token after a 401
                rejected = e.token or credential.token
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} for {origin}: token "
                    f"{rejected[:8]}... reported invalid, invalidating"
                )
                self.pool.invalidate(origin, rejected)
            except ScraperError as e:
                last_error = e
                logger.warning(f"Attempt {attempt}/{self.max_attempts} for {origin} failed: {e}")

        logger.error(f"All {self.max_attempts} attempts failed for {origin}")
        raise last_error

    # =========================================
    # Endpoints
    # =========================================

    async def _get_json(
        self,
        origin: str,
        credential: Credential,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        referer: Optional[str] = None,
    ) -> Any:
        base_url = origin_base_url(origin)
        url = f"{base_url}{path}"
        response = await self.http.get(
            url,
            origin=origin,
            params=params,
            headers={
                "Accept": API_ACCEPT,
                "Accept-Encoding": "gzip, deflate, br",
                "Referer": referer or f"{base_url}/",
                "Sec-Fetch-Dest": "empty",
                "Sec-Fetch-Mode": "cors",
                "Sec-Fetch-Site": "same-origin",
                "Cookie": token_cookie(credential.token),
            },
        )
        return self._check_response(response, credential)

    def _check_response(self, response: HttpResponse, credential: Credential) -> Any:
        """Map a response to its payload or the matching error."""
        if response.status == 401:
            raise AuthRejectedError(url=response.url)
        if response.status == 403:
            raise EdgeBlockedError(url=response.url)
        if not response.ok:
            raise UnexpectedResponseError(
                f"HTTP {response.status} from origin",
                url=response.url,
                status_code=response.status,
            )

        payload = response.json()
        if is_invalid_token_payload(payload):
            raise ApplicationInvalidTokenError(
                token=response.sent_token or credential.token,
                url=response.url,
                status_code=response.status,
            )
        return payload

    async def fetch_item_details(self, origin: str, item_id: str) -> Dict[str, Any]:
        """
        Fetch the JSON description of one listing.

        Args:
            origin: Origin key, e.g. "co.uk".
            item_id: Numeric listing id.

        Returns:
            The ``item`` object of the API response.
        """
        async def call(credential: Credential) -> Dict[str, Any]:
            payload = await self._get_json(origin, credential, f"/api/v2/items/{item_id}")
            item = payload.get("item") if isinstance(payload, dict) else None
            if not isinstance(item, dict):
                raise ResponseParsingError("Item payload has no 'item' object")
            return item

        logger.info(f"Fetching item {item_id} from {origin}")
        return await self.with_credential(origin, call)

    async def fetch_item_from_url(self, url: str) -> Dict[str, Any]:
        """Resolve origin and item id from a listing URL and fetch it."""
        return await self.fetch_item_details(origin_from_url(url), extract_item_id_from_url(url))

    async def search_catalog(
        self,
        origin: str,
        search_text: str,
        page: int = 1,
        per_page: Optional[int] = None,
        order: str = "newest_first",
        extra_params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Fetch one catalog search page.

        Args:
            origin: Origin key.
            search_text: Free text query.
            page: 1-based page number.
            per_page: Page size (defaults to the client's).
            order: Sort order understood by the API.
            extra_params: Additional filters, e.g. {"catalog_ids[]": 5}.

        Returns:
            Decoded page payload with an ``items`` list.
        """
        params: Dict[str, Any] = {
            "search_text": search_text,
            "page": page,
            "per_page": per_page or self.per_page,
            "order": order,
        }
        params.update(extra_params or {})
        referer = f"{origin_base_url(origin)}/catalog"

        async def call(credential: Credential) -> Dict[str, Any]:
            payload = await self._get_json(
                origin, credential, "/api/v2/catalog/items", params=params, referer=referer
            )
            if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
                raise ResponseParsingError("Catalog payload has no 'items' list")
            return payload

        logger.info(f"Searching {origin} for '{search_text}' (page {page})")
        return await self.with_credential(origin, call)

    async def iter_catalog(
        self,
        origin: str,
        search_text: str,
        max_pages: int = 1,
        **kwargs,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield catalog items page by page, stopping at the first empty page.
        """
        for page in range(1, max_pages + 1):
            payload = await self.search_catalog(origin, search_text, page=page, **kwargs)
            items = payload["items"]
            if not items:
                logger.info(f"No items on page {page}, stopping")
                return
            for item in items:
                yield item


# =========================================
# Factory Function
# =========================================

def create_api_client(config: Optional[AppConfig] = None) -> VintedApiClient:
    """
    Wire snapshot store, pool, hardened client and replenisher together.

    Args:
        config: Application config; the cached config is used if None.

    Returns:
        Ready to use VintedApiClient.
    """
    config = config or get_config()

    store = JsonSnapshotStore(Path(config.pool.snapshot_path))
    pool = CredentialPool.from_config(config.pool, store)
    http = HardenedClient.from_config(config, pool=pool)

    fetcher = SessionTokenFetcher(
        http,
        lifetime=config.pool.lifetime,
        timeout_seconds=config.http.landing_timeout_seconds,
        clock=pool.clock,
    )
    pool.attach_replenisher(
        Replenisher(pool, fetcher, create_rate_limiter_from_config(config.replenish))
    )

    return VintedApiClient(
        http,
        pool,
        max_attempts=config.api.max_attempts,
        per_page=config.api.per_page,
    )
