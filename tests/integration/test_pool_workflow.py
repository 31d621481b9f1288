"""Integration tests for the pool, replenisher and snapshot file together."""

import json

import pytest

from sessionpool.core.credential_pool import CredentialPool
from sessionpool.core.replenisher import Replenisher
from sessionpool.infrastructure.http.hardened_client import HardenedClient, HttpResponse
from sessionpool.infrastructure.scraper.vinted_api import VintedApiClient, create_api_client
from sessionpool.infrastructure.storage.snapshot_store import JsonSnapshotStore
from sessionpool.utils.config import AppConfig, PoolConfig
from sessionpool.utils.exceptions import ApplicationInvalidTokenError

LIFETIME_MS = 10 * 60 * 1000


def _pool(path, clock, fetcher, make_limiter) -> CredentialPool:
    pool = CredentialPool(
        JsonSnapshotStore(path),
        min_threshold=3,
        max_capacity=5,
        lifetime=PoolConfig(lifetime_minutes=10).lifetime,
        clock=clock,
    )
    pool.attach_replenisher(Replenisher(pool, fetcher, make_limiter()))
    return pool


class TestPoolWorkflow:
    """Test the pool lifecycle across restarts."""

    @pytest.mark.asyncio
    async def test_fill_persist_restart_expire(self, tmp_path, clock, make_fetcher, make_limiter):
        """Test a filled pool survives a restart and refills after expiry."""
        path = tmp_path / "pool.json"
        fetcher = make_fetcher()
        pool = _pool(path, clock, fetcher, make_limiter)

        first = await pool.acquire("co.uk")
        assert [c.token for c in first] == ["tok-5", "tok-4", "tok-3", "tok-2", "tok-1"]

        on_disk = json.loads(path.read_text(encoding="utf-8"))
        assert [entry["token"] for entry in on_disk["co.uk"]] == ["tok-5", "tok-4", "tok-3", "tok-2", "tok-1"]

        restarted = _pool(path, clock, fetcher, make_limiter)
        assert [c.token for c in await restarted.acquire("co.uk")] == [c.token for c in first]
        assert len(fetcher.calls) == 5

        clock.advance(LIFETIME_MS)
        refreshed = await restarted.acquire("co.uk")

        assert len(fetcher.calls) == 10
        assert [c.token for c in refreshed] == ["tok-10", "tok-9", "tok-8", "tok-7", "tok-6"]

    @pytest.mark.asyncio
    async def test_invalidation_is_persisted(self, tmp_path, clock, make_fetcher, make_limiter):
        """Test an invalidated token does not come back after a restart."""
        path = tmp_path / "pool.json"
        pool = _pool(path, clock, make_fetcher(), make_limiter)
        await pool.acquire("co.uk")

        pool.invalidate("co.uk", "tok-3")

        restarted = _pool(path, clock, make_fetcher(), make_limiter)
        assert "tok-3" not in restarted
        assert len(restarted.valid("co.uk")) == 4

    @pytest.mark.asyncio
    async def test_corrupt_snapshot_starts_empty(self, tmp_path, clock, make_fetcher, make_limiter):
        """Test a corrupt snapshot is removed and the pool refills."""
        path = tmp_path / "pool.json"
        path.write_text("\x00garbage", encoding="utf-8")

        pool = _pool(path, clock, make_fetcher(), make_limiter)
        assert not path.exists()

        assert len(await pool.acquire("co.uk")) == 5
        assert path.exists()

    @pytest.mark.asyncio
    async def test_api_call_with_401_rotation(self, tmp_path, clock, make_fetcher, make_limiter, make_credential):
        """Test a consumer call recovers from an HTTP 401 through the client."""
        path = tmp_path / "pool.json"
        pool = CredentialPool(JsonSnapshotStore(path), min_threshold=1, max_capacity=1, clock=clock)
        pool.attach_replenisher(Replenisher(pool, make_fetcher(tokens=["T2"]), make_limiter()))
        pool.add("co.uk", make_credential("T1"))
        client = HardenedClient(pool=pool)
        sent = []

        async def fake_send(method, url, headers, timeout=None, **kwargs):
            sent.append(headers["Cookie"])
            if "T1" in headers["Cookie"]:
                return HttpResponse(status=401, url=url)
            return HttpResponse(status=200, url=url, body=b'{"item": {"id": 1}}')

        client._send = fake_send
        api = VintedApiClient(client, pool, max_attempts=1)

        item = await api.fetch_item_details("co.uk", "1")

        assert item == {"id": 1}
        assert sent == ["access_token_web=T1", "access_token_web=T2"]
        assert "T1" not in pool
        on_disk = json.loads(path.read_text(encoding="utf-8"))
        assert [entry["token"] for entry in on_disk["co.uk"]] == ["T2"]

    @pytest.mark.asyncio
    async def test_invalid_token_after_rotation_drops_rotated_token(
        self, tmp_path, clock, make_fetcher, make_limiter, make_credential
    ):
        """Test the token rejected in the body is the one removed, even after a 401 swap."""
        path = tmp_path / "pool.json"
        pool = CredentialPool(JsonSnapshotStore(path), min_threshold=1, max_capacity=1, clock=clock)
        pool.attach_replenisher(Replenisher(pool, make_fetcher(tokens=["T2"]), make_limiter()))
        pool.add("co.uk", make_credential("T1"))
        client = HardenedClient(pool=pool)

        async def fake_send(method, url, headers, timeout=None, **kwargs):
            if "T1" in headers["Cookie"]:
                return HttpResponse(status=401, url=url)
            return HttpResponse(
                status=200,
                url=url,
                body=b'{"code": 100, "message_code": "invalid_authentication_token"}',
            )

        client._send = fake_send
        api = VintedApiClient(client, pool, max_attempts=1)

        with pytest.raises(ApplicationInvalidTokenError) as exc_info:
            await api.fetch_item_details("co.uk", "1")

        assert exc_info.value.token == "T2"
        assert "T1" not in pool
        assert "T2" not in pool
        on_disk = json.loads(path.read_text(encoding="utf-8"))
        assert on_disk.get("co.uk", []) == []


class TestFactory:
    """Test the wiring helper."""

    @pytest.mark.asyncio
    async def test_create_api_client(self, tmp_path):
        """Test configuration flows into every component."""
        config = AppConfig(
            pool=PoolConfig(min_threshold=2, max_capacity=4, snapshot_path=str(tmp_path / "pool.json")),
            api={"max_attempts": 5, "per_page": 48},
            http={"proxy_settings_path": str(tmp_path / "no-proxy.json")},
        )

        async with create_api_client(config) as api:
            assert api.max_attempts == 5
            assert api.per_page == 48
            assert api.pool.max_capacity == 4
            assert api.pool.replenisher is not None
            assert api.pool.replenisher.fetch_token.client is api.http
            assert api.http.pool is api.pool
            assert api.http.proxy is None
