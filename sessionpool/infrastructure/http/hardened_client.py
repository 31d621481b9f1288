"""
Hardened HTTP client for origin requests.

Wraps aiohttp with:
- A browser disguise profile (TLS context plus matching headers)
- An optional, connection-bounded SOCKS5 tunnel
- Transparent one-shot token rotation when the origin answers 401

Statuses below 500 are returned to the caller for inspection; 5xx
statuses and transport failures raise.

Example:
    >>> async with HardenedClient(pool=pool) as client:
    ...     response = await client.get(
    ...         "https://www.vinted.co.uk/api/v2/items/123",
    ...         headers={"Cookie": f"access_token_web={credential.token}"},
    ...     )
    ...     print(response.status, response.json())
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, TYPE_CHECKING

import aiohttp
from aiohttp_socks import ProxyConnectionError, ProxyConnector, ProxyError, ProxyTimeoutError
from multidict import CIMultiDict

from sessionpool.infrastructure.http.browser_profile import BrowserProfile
from sessionpool.infrastructure.http.proxy import ProxyConfig, load_proxy_settings
from sessionpool.infrastructure.scraper.utils import (
    extract_access_token,
    origin_base_url,
    origin_from_url,
    replace_access_token,
)
from sessionpool.utils.config import AppConfig
from sessionpool.utils.exceptions import ResponseParsingError, TransportError, UpstreamServerError
from sessionpool.utils.logger import get_logger

if TYPE_CHECKING:
    from sessionpool.core.credential_pool import CredentialPool

logger = get_logger(__name__)

MAX_REDIRECTS = 5


@dataclass
class HttpResponse:
    """
    Fully read HTTP response.

    Attributes:
        status: HTTP status code.
        url: Final URL after redirects.
        headers: Case-insensitive response headers.
        body: Raw response body.
        sent_token: Session token carried by the request that produced
            this response, after any 401 rotation.
    """
    status: int
    url: str
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    body: bytes = b""
    sent_token: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def set_cookies(self) -> list[str]:
        return self.headers.getall("Set-Cookie", [])

    def json(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            ResponseParsingError: If the body is not valid JSON.
        """
        try:
            return json.loads(self.body)
        except ValueError as e:
            raise ResponseParsingError(
                f"Response is not valid JSON: {e}",
                url=self.url,
                status_code=self.status,
            ) from e


class HardenedClient:
    """
    Disguised HTTP client with automatic 401 token rotation.

    Attributes:
        pool: Credential pool used for 401 recovery (optional).
        profile: Browser disguise profile.
        proxy: SOCKS5 proxy settings, or None for direct connections.
        timeout_seconds: Default total timeout per request.
        max_connections: Cap on simultaneous connections.
    """

    def __init__(
        self,
        pool: Optional["CredentialPool"] = None,
        profile: Optional[BrowserProfile] = None,
        proxy: Optional[ProxyConfig] = None,
        timeout_seconds: float = 30.0,
        max_connections: int = 10,
    ):
        self.pool = pool
        self.profile = profile or BrowserProfile()
        self.proxy = proxy
        self.timeout_seconds = timeout_seconds
        self.max_connections = max_connections
        self._session: Optional[aiohttp.ClientSession] = None

        logger.info(
            f"HardenedClient initialized: proxy={self.proxy or 'direct'}, "
            f"chrome={self.profile.chrome_version}"
        )

    @classmethod
    def from_config(cls, config: AppConfig, pool: Optional["CredentialPool"] = None) -> "HardenedClient":
        return cls(
            pool=pool,
            profile=BrowserProfile.from_config(config.http),
            proxy=load_proxy_settings(config.http.proxy_settings_path),
            timeout_seconds=config.http.timeout_seconds,
            max_connections=config.http.max_connections,
        )

    # =========================================
    # Context Manager
    # =========================================

    async def __aenter__(self) -> "HardenedClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        """Create the aiohttp session lazily, inside the running loop."""
        if self._session is None or self._session.closed:
            ssl_context = self.profile.ssl_context()
            if self.proxy is not None:
                connector = ProxyConnector.from_url(
                    self.proxy.url, ssl=ssl_context, limit=self.max_connections
                )
            else:
                connector = aiohttp.TCPConnector(ssl=ssl_context, limit=self.max_connections)

            # Cookies are chosen per request; never let the jar mix sessions
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                cookie_jar=aiohttp.DummyCookieJar(),
            )
        return self._session

    # =========================================
    # Requests
    # =========================================

    async def get(self, url: str, **kwargs) -> HttpResponse:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> HttpResponse:
        return await self.request("POST", url, **kwargs)

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        origin: Optional[str] = None,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> HttpResponse:
        """
        Issue a disguised request.

        If the origin answers 401 to a request carrying a session token
        cookie, that token is invalidated, a fresh one is drawn from the
        pool and the identical request is re-issued once.

        Args:
            method: HTTP verb.
            url: Absolute URL.
            headers: Headers overriding the profile's (case-insensitive).
            origin: Origin key for pool lookups; derived from ``url`` if None.
            timeout: Total timeout in seconds for this call.
            **kwargs: Passed through to aiohttp (params, json, data...).

        Returns:
            The response (status < 500).

        Raises:
            TransportError: On timeouts and connection failures.
            UpstreamServerError: On 5xx statuses.
        """
        origin = origin or origin_from_url(url)
        request_headers = CIMultiDict(self.profile.headers(origin_base_url(origin)))
        for name, value in (headers or {}).items():
            request_headers[name] = value

        response = await self._send(method, url, request_headers, timeout=timeout, **kwargs)
        response.sent_token = extract_access_token(request_headers.get("Cookie"))

        if response.status == 401:
            response = await self._retry_with_fresh_token(
                method, url, request_headers, response, origin, timeout=timeout, **kwargs
            )

        if response.status == 403:
            logger.error(f"Blocked by edge protection (HTTP 403): {method} {url}")

        return response

    async def _retry_with_fresh_token(
        self,
        method: str,
        url: str,
        request_headers: CIMultiDict,
        response: HttpResponse,
        origin: str,
        **kwargs,
    ) -> HttpResponse:
        token = extract_access_token(request_headers.get("Cookie"))
        if token is None or self.pool is None:
            return response

        logger.info(f"Unauthorized with token {token[:8]}..., rotating session for {origin}")
        self.pool.invalidate(origin, token)

        fresh = self.pool.pick_random(await self.pool.acquire(origin))
        if fresh is None:
            fresh = self.pool.pick_random(await self.pool.acquire(origin, force=True))
        if fresh is None:
            logger.warning(f"No fresh credential for {origin}, returning original 401")
            return response

        retry_headers = CIMultiDict(request_headers)
        retry_headers["Cookie"] = replace_access_token(request_headers["Cookie"], fresh.token)
        retry_response = await self._send(method, url, retry_headers, **kwargs)
        retry_response.sent_token = fresh.token
        return retry_response

    async def _send(
        self,
        method: str,
        url: str,
        headers: CIMultiDict,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> HttpResponse:
        """Perform one HTTP exchange and read the whole body."""
        session = self._get_session()
        if timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)

        try:
            async with session.request(
                method, url, headers=headers, max_redirects=MAX_REDIRECTS, **kwargs
            ) as resp:
                body = await resp.read()
                response = HttpResponse(
                    status=resp.status,
                    url=str(resp.url),
                    headers=CIMultiDict(resp.headers),
                    body=body,
                )
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timed out: {method} {url}", url=url) from e
        except (aiohttp.ClientError, ProxyError, ProxyConnectionError, ProxyTimeoutError) as e:
            raise TransportError(f"{e.__class__.__name__}: {e}", url=url) from e

        logger.debug(f"{method} {url} -> HTTP {response.status}")

        if response.status >= 500:
            raise UpstreamServerError(
                f"HTTP {response.status} from origin",
                url=url,
                status_code=response.status,
            )
        return response
