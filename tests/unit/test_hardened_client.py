"""Unit tests for the hardened HTTP client."""

import asyncio
from typing import List, Optional

import aiohttp
import pytest
from multidict import CIMultiDict

from sessionpool.infrastructure.http.browser_profile import BrowserProfile
from sessionpool.infrastructure.http.hardened_client import HardenedClient, HttpResponse
from sessionpool.utils.exceptions import ResponseParsingError, TransportError, UpstreamServerError

API_URL = "https://www.vinted.co.uk/api/v2/items/1"


class FakeResponse:
    def __init__(self, status: int, url: str, headers: Optional[CIMultiDict] = None, body: bytes = b""):
        self.status = status
        self.url = url
        self.headers = headers or CIMultiDict()
        self._body = body

    async def read(self) -> bytes:
        return self._body


class FakeRequestContext:
    def __init__(self, response: FakeResponse):
        self.response = response

    async def __aenter__(self) -> FakeResponse:
        return self.response

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None


class FakeSession:
    """Stand-in for aiohttp.ClientSession answering from a script."""

    def __init__(self, responses: Optional[List[FakeResponse]] = None, error: Optional[BaseException] = None):
        self.responses = list(responses or [])
        self.error = error
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return FakeRequestContext(self.responses.pop(0))

    async def close(self) -> None:
        self.closed = True


def _client_with(session: FakeSession, pool=None) -> HardenedClient:
    client = HardenedClient(pool=pool)
    client._get_session = lambda: session
    return client


def _scripted_send(client: HardenedClient, status_for_token):
    """Replace _send with a function answering by the token in the Cookie header."""
    sent = []

    async def fake_send(method, url, headers, timeout=None, **kwargs):
        sent.append(CIMultiDict(headers))
        return HttpResponse(status=status_for_token(headers.get("Cookie", "")), url=url)

    client._send = fake_send
    return sent


class TestHttpResponse:
    """Test the response wrapper."""

    def test_set_cookies_returns_every_header(self):
        """Test repeated Set-Cookie headers are all kept."""
        headers = CIMultiDict()
        headers.add("Set-Cookie", "a=1; Path=/")
        headers.add("set-cookie", "access_token_web=xyz; Path=/")

        response = HttpResponse(status=200, url=API_URL, headers=headers)

        assert response.set_cookies == ["a=1; Path=/", "access_token_web=xyz; Path=/"]

    def test_invalid_json_raises(self):
        """Test undecodable bodies raise a parsing error."""
        response = HttpResponse(status=200, url=API_URL, body=b"<html>")
        with pytest.raises(ResponseParsingError):
            response.json()

    def test_ok_range(self):
        assert HttpResponse(status=204, url=API_URL).ok
        assert not HttpResponse(status=302, url=API_URL).ok


class TestTransport:
    """Test the single HTTP exchange."""

    @pytest.mark.asyncio
    async def test_profile_headers_merged_with_caller_headers(self):
        """Test caller headers override profile headers case-insensitively."""
        session = FakeSession([FakeResponse(200, API_URL, body=b"{}")])
        client = _client_with(session)

        await client.get(API_URL, headers={"accept": "application/json", "X-Extra": "1"})

        _, _, kwargs = session.calls[0]
        headers = kwargs["headers"]
        assert headers.getall("Accept") == ["application/json"]
        assert headers["X-Extra"] == "1"
        assert headers["User-Agent"] == BrowserProfile().user_agent
        assert headers["Referer"] == "https://www.vinted.co.uk/"
        assert kwargs["max_redirects"] == 5

    @pytest.mark.asyncio
    async def test_per_call_timeout(self):
        """Test a per-call timeout becomes an aiohttp ClientTimeout."""
        session = FakeSession([FakeResponse(200, API_URL)])
        client = _client_with(session)

        await client.get(API_URL, timeout=5)

        _, _, kwargs = session.calls[0]
        assert kwargs["timeout"].total == 5

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        """Test 5xx statuses raise instead of returning."""
        session = FakeSession([FakeResponse(503, API_URL)])
        client = _client_with(session)

        with pytest.raises(UpstreamServerError) as exc_info:
            await client.get(API_URL)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_timeout_raises_transport_error(self):
        """Test timeouts surface as TransportError."""
        client = _client_with(FakeSession(error=asyncio.TimeoutError()))

        with pytest.raises(TransportError):
            await client.get(API_URL)

    @pytest.mark.asyncio
    async def test_connection_error_raises_transport_error(self):
        """Test aiohttp client errors surface as TransportError."""
        client = _client_with(FakeSession(error=aiohttp.ClientConnectionError("reset")))

        with pytest.raises(TransportError):
            await client.get(API_URL)

    @pytest.mark.asyncio
    async def test_client_errors_are_returned(self):
        """Test 4xx statuses are returned to the caller."""
        session = FakeSession([FakeResponse(404, API_URL, body=b"not found")])
        client = _client_with(session)

        response = await client.get(API_URL)

        assert response.status == 404
        assert response.text == "not found"

    @pytest.mark.asyncio
    async def test_close_closes_session(self):
        """Test the context manager closes the underlying session."""
        session = FakeSession([FakeResponse(200, API_URL)])
        client = _client_with(session)
        client._session = session

        async with client:
            await client.get(API_URL)

        assert session.closed


class TestTokenRotation:
    """Test one-shot recovery from 401 responses."""

    @pytest.mark.asyncio
    async def test_401_rotates_to_fresh_token(self, make_pool, make_credential):
        """Test a rejected token is invalidated and the request retried once."""
        pool = make_pool(min_threshold=1)
        pool.add("co.uk", make_credential("T1"))
        pool.add("co.uk", make_credential("T2"))
        client = HardenedClient(pool=pool)
        sent = _scripted_send(client, lambda cookie: 401 if "T1" in cookie else 200)

        response = await client.get(API_URL, headers={"Cookie": "access_token_web=T1"})

        assert response.status == 200
        assert len(sent) == 2
        assert sent[1]["Cookie"] == "access_token_web=T2"
        assert "T1" not in pool
        assert "T2" in pool

    @pytest.mark.asyncio
    async def test_response_reports_token_actually_sent(self, make_pool, make_credential):
        """Test the response names the rotated token, not the caller's."""
        pool = make_pool(min_threshold=1)
        pool.add("co.uk", make_credential("T1"))
        pool.add("co.uk", make_credential("T2"))
        client = HardenedClient(pool=pool)
        _scripted_send(client, lambda cookie: 401 if "T1" in cookie else 200)

        rotated = await client.get(API_URL, headers={"Cookie": "access_token_web=T1"})
        direct = await client.get(API_URL, headers={"Cookie": "access_token_web=T2"})
        anonymous = await client.get(API_URL)

        assert rotated.sent_token == "T2"
        assert direct.sent_token == "T2"
        assert anonymous.sent_token is None

    @pytest.mark.asyncio
    async def test_other_cookies_survive_rotation(self, make_pool, make_credential):
        """Test only the token cookie is swapped on retry."""
        pool = make_pool(min_threshold=1)
        pool.add("co.uk", make_credential("T1"))
        pool.add("co.uk", make_credential("T2"))
        client = HardenedClient(pool=pool)
        sent = _scripted_send(client, lambda cookie: 401 if "T1" in cookie else 200)

        await client.get(API_URL, headers={"Cookie": "anon_id=42; access_token_web=T1"})

        assert sent[1]["Cookie"] == "anon_id=42; access_token_web=T2"

    @pytest.mark.asyncio
    async def test_retry_happens_only_once(self, make_pool, make_credential):
        """Test a second 401 is returned rather than rotated again."""
        pool = make_pool(min_threshold=1)
        pool.add("co.uk", make_credential("T1"))
        pool.add("co.uk", make_credential("T2"))
        client = HardenedClient(pool=pool)
        sent = _scripted_send(client, lambda cookie: 401)

        response = await client.get(API_URL, headers={"Cookie": "access_token_web=T1"})

        assert response.status == 401
        assert len(sent) == 2

    @pytest.mark.asyncio
    async def test_no_fresh_token_returns_original_401(self, make_pool, make_credential):
        """Test the 401 is returned when the pool cannot supply a token."""
        pool = make_pool(min_threshold=1)
        pool.add("co.uk", make_credential("T1"))
        client = HardenedClient(pool=pool)
        sent = _scripted_send(client, lambda cookie: 401)

        response = await client.get(API_URL, headers={"Cookie": "access_token_web=T1"})

        assert response.status == 401
        assert len(sent) == 1
        assert "T1" not in pool

    @pytest.mark.asyncio
    async def test_replenished_token_used_when_pool_runs_dry(self, make_pool, make_fetcher, make_credential):
        """Test a token fetched on demand is used for the retry."""
        pool = make_pool(min_threshold=1, max_capacity=1, fetcher=make_fetcher(tokens=["FRESH"]))
        pool.add("co.uk", make_credential("T1"))
        client = HardenedClient(pool=pool)
        sent = _scripted_send(client, lambda cookie: 401 if "T1" in cookie else 200)

        response = await client.get(API_URL, headers={"Cookie": "access_token_web=T1"})

        assert response.status == 200
        assert sent[1]["Cookie"] == "access_token_web=FRESH"

    @pytest.mark.asyncio
    async def test_401_without_token_is_returned(self, make_pool):
        """Test requests without a session token are not retried."""
        client = HardenedClient(pool=make_pool())
        sent = _scripted_send(client, lambda cookie: 401)

        response = await client.get(API_URL)

        assert response.status == 401
        assert len(sent) == 1

    @pytest.mark.asyncio
    async def test_403_is_not_retried(self, make_pool, make_credential):
        """Test edge blocks are returned untouched."""
        pool = make_pool(min_threshold=1)
        pool.add("co.uk", make_credential("T1"))
        client = HardenedClient(pool=pool)
        sent = _scripted_send(client, lambda cookie: 403)

        response = await client.get(API_URL, headers={"Cookie": "access_token_web=T1"})

        assert response.status == 403
        assert len(sent) == 1
        assert "T1" in pool
