"""Pytest fixtures and configuration for session pool tests."""

from datetime import timedelta
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import pytest

from sessionpool.core.credential_pool import CredentialPool
from sessionpool.core.replenisher import Replenisher
from sessionpool.domain.entities.credential import Credential
from sessionpool.domain.interfaces.store_interface import SnapshotStoreInterface
from sessionpool.infrastructure.scraper.rate_limiter import RateLimiter
from sessionpool.utils.config import reset_config
from sessionpool.utils.exceptions import TokenExtractionError

START_MS = 1_700_000_000_000
LIFETIME = timedelta(minutes=10)
LIFETIME_MS = 10 * 60 * 1000


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep cached config and proxy settings out of the tests."""
    monkeypatch.delenv("SESSIONPOOL_CONFIG", raising=False)
    for name in ("PROXY_HOST", "PROXY_PORT", "PROXY_USER", "PROXY_PASS"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class InMemoryStore(SnapshotStoreInterface):
    """Snapshot store keeping the last saved snapshot in memory."""

    def __init__(self, initial: Optional[Dict[str, List[Credential]]] = None):
        self.data: Dict[str, List[Credential]] = {
            origin: list(credentials) for origin, credentials in (initial or {}).items()
        }
        self.saves = 0

    def load(self) -> Dict[str, List[Credential]]:
        return {origin: list(credentials) for origin, credentials in self.data.items()}

    def save(self, snapshot: Mapping[str, Sequence[Credential]]) -> None:
        self.data = {origin: list(credentials) for origin, credentials in snapshot.items()}
        self.saves += 1

    def clear(self) -> None:
        self.data = {}

    def tokens(self, origin: str) -> List[str]:
        return [c.token for c in self.data.get(origin, [])]


class ScriptedFetcher:
    """
    Token fetcher issuing ``tok-1``, ``tok-2``... one millisecond apart.

    Entries in ``failures`` are attempt numbers (1-based) that raise
    instead of returning a credential.
    """

    def __init__(self, clock: FakeClock, failures: Sequence[int] = (), tokens: Optional[Sequence[str]] = None):
        self.clock = clock
        self.failures = set(failures)
        self.tokens = list(tokens) if tokens is not None else None
        self.calls: List[str] = []

    async def __call__(self, origin: str) -> Credential:
        self.calls.append(origin)
        attempt = len(self.calls)
        self.clock.advance(1)
        if attempt in self.failures:
            raise TokenExtractionError("Landing response did not set a session token")
        token = self.tokens[attempt - 1] if self.tokens is not None else f"tok-{attempt}"
        return Credential.issue(token, LIFETIME, now=self.clock())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def make_fetcher(clock) -> Callable[..., ScriptedFetcher]:
    def _make(failures: Sequence[int] = (), tokens: Optional[Sequence[str]] = None) -> ScriptedFetcher:
        return ScriptedFetcher(clock, failures=failures, tokens=tokens)
    return _make


@pytest.fixture
def make_store() -> Callable[..., InMemoryStore]:
    return InMemoryStore


@pytest.fixture
def make_limiter() -> Callable[[], RateLimiter]:
    return no_delay_limiter


@pytest.fixture
def make_credential(clock) -> Callable[..., Credential]:
    """Build a credential created ``age_ms`` before the fake clock's now."""
    def _make(token: str, age_ms: int = 0, lifetime_ms: int = LIFETIME_MS) -> Credential:
        created = clock() - age_ms
        return Credential(token=token, created_at=created, expires_at=created + lifetime_ms)
    return _make


@pytest.fixture
def make_pool(clock, store) -> Callable[..., CredentialPool]:
    """Factory for pools sharing the fake clock and in-memory store."""
    def _make(
        min_threshold: int = 3,
        max_capacity: int = 20,
        fetcher: Optional[ScriptedFetcher] = None,
        pool_store: Optional[SnapshotStoreInterface] = None,
    ) -> CredentialPool:
        pool = CredentialPool(
            pool_store or store,
            min_threshold=min_threshold,
            max_capacity=max_capacity,
            lifetime=LIFETIME,
            clock=clock,
        )
        if fetcher is not None:
            pool.attach_replenisher(Replenisher(pool, fetcher, no_delay_limiter()))
        return pool
    return _make


def no_delay_limiter() -> RateLimiter:
    return RateLimiter(base_delay=0.0, max_jitter=0.0)
