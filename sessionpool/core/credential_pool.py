"""
Per-origin pool of ephemeral session credentials.

The pool keeps, for every origin key (e.g. ``"co.uk"``), a bounded list
of credentials ordered newest-first. Expired credentials are dropped
lazily on access; rejected ones are removed on request. Every mutation
is persisted through a snapshot store before control returns to the
event loop.

Example:
    >>> pool = CredentialPool(JsonSnapshotStore("data/session_pool.json"))
    >>> pool.attach_replenisher(Replenisher(pool, fetch_token))
    >>> credentials = await pool.acquire("co.uk")
    >>> credential = pool.pick_random(credentials)
"""

from __future__ import annotations

import bisect
import random
from datetime import timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, TYPE_CHECKING

from sessionpool.domain.entities.credential import Clock, Credential, now_ms
from sessionpool.domain.interfaces.store_interface import SnapshotStoreInterface
from sessionpool.utils.config import PoolConfig
from sessionpool.utils.exceptions import PoolExhaustedError
from sessionpool.utils.logger import get_logger

if TYPE_CHECKING:
    from sessionpool.core.replenisher import Replenisher

logger = get_logger(__name__)


# ============================================
# Bounded Container
# ============================================


class CredentialBucket:
    """
    Bounded, newest-first ordered credentials for one origin.

    Insertion keeps the order with a binary search instead of re-sorting,
    and trims from the oldest end once ``capacity`` is exceeded. Tokens
    are unique within a bucket.

    Attributes:
        capacity: Maximum number of credentials kept.
    """

    def __init__(self, capacity: int, credentials: Iterable[Credential] = ()):
        self.capacity = capacity
        self._items: List[Credential] = []
        self._tokens: set[str] = set()
        for credential in credentials:
            self.insert(credential)

    def insert(self, credential: Credential) -> bool:
        """
        Insert a credential at its position by creation time.

        Returns:
            False if the token is already present or the credential is
            older than everything kept in a full bucket.
        """
        if credential.token in self._tokens:
            return False

        # Newest first: ties go in front of existing entries
        index = bisect.bisect_left(
            self._items, -credential.created_at, key=lambda c: -c.created_at
        )
        if index >= self.capacity:
            return False

        self._items.insert(index, credential)
        self._tokens.add(credential.token)

        while len(self._items) > self.capacity:
            evicted = self._items.pop()
            self._tokens.discard(evicted.token)
        return True

    def remove(self, token: str) -> bool:
        if token not in self._tokens:
            return False
        self._items = [c for c in self._items if c.token != token]
        self._tokens.discard(token)
        return True

    def prune(self, now: int) -> int:
        """Drop expired credentials, returning how many were removed."""
        kept = [c for c in self._items if c.is_valid(now)]
        removed = len(self._items) - len(kept)
        if removed:
            self._items = kept
            self._tokens = {c.token for c in kept}
        return removed

    def valid(self, now: int) -> List[Credential]:
        return [c for c in self._items if c.is_valid(now)]

    def __contains__(self, token: object) -> bool:
        return token in self._tokens

    def __iter__(self) -> Iterator[Credential]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)


# ============================================
# Pool
# ============================================


class CredentialPool:
    """
    Self-replenishing, capacity-bounded pool of session credentials.

    Attributes:
        min_threshold: Replenish when fewer valid credentials remain.
        max_capacity: Maximum credentials kept per origin.
        lifetime: Time-to-live given to newly issued credentials.
        clock: Callable returning the current time in epoch ms.
    """

    def __init__(
        self,
        store: SnapshotStoreInterface,
        min_threshold: int = 3,
        max_capacity: int = 20,
        lifetime: timedelta = timedelta(minutes=10),
        clock: Optional[Clock] = None,
        replenisher: Optional["Replenisher"] = None,
    ):
        """
        Initialize the pool from the store's snapshot.

        Args:
            store: Snapshot store read once here and written on every mutation.
            min_threshold: Valid count below which ``acquire`` replenishes.
            max_capacity: Upper bound on credentials per origin.
            lifetime: Time-to-live for new credentials.
            clock: Time source in epoch ms (defaults to wall clock).
            replenisher: Optional replenisher; may be attached later.
        """
        if min_threshold > max_capacity:
            raise ValueError("min_threshold must not exceed max_capacity")

        self.store = store
        self.min_threshold = min_threshold
        self.max_capacity = max_capacity
        self.lifetime = lifetime
        self.clock: Clock = clock or now_ms
        self.replenisher = replenisher

        self._buckets: Dict[str, CredentialBucket] = {
            origin: CredentialBucket(max_capacity, credentials)
            for origin, credentials in store.load().items()
        }

    @classmethod
    def from_config(
        cls,
        config: PoolConfig,
        store: SnapshotStoreInterface,
        clock: Optional[Clock] = None,
    ) -> "CredentialPool":
        return cls(
            store=store,
            min_threshold=config.min_threshold,
            max_capacity=config.max_capacity,
            lifetime=config.lifetime,
            clock=clock,
        )

    def attach_replenisher(self, replenisher: "Replenisher") -> None:
        self.replenisher = replenisher

    # =========================================
    # Public Operations
    # =========================================

    async def acquire(self, origin: str, force: bool = False) -> List[Credential]:
        """
        Return all currently valid credentials for an origin.

        Expired entries are pruned first. When fewer than ``min_threshold``
        remain, or ``force`` is set, a replenishment run sized to refill the
        pool to ``max_capacity`` is awaited before returning. If a run is
        already in flight this call does not wait for it and returns the
        current, possibly short, set.

        Args:
            origin: Origin key, e.g. "co.uk".
            force: Replenish even if the pool is healthy.

        Returns:
            Valid credentials, newest first.
        """
        valid = self._prune(origin)

        if len(valid) < self.min_threshold or force:
            if self.replenisher is None:
                logger.warning(
                    f"Pool for {origin} has {len(valid)} valid credentials "
                    f"and no replenisher attached"
                )
                return valid

            count = self.max_capacity - len(valid)
            if force:
                count = max(count, 1)
            logger.info(
                f"Replenishing {origin}: {len(valid)} valid, requesting {count} "
                f"(force={force})"
            )
            await self.replenisher.replenish(origin, count)
            valid = self._prune(origin)

        return valid

    def invalidate(self, origin: str, token: str) -> List[Credential]:
        """
        Remove the credential holding ``token``; a missing token is a no-op.

        Returns:
            The remaining valid credentials for the origin.
        """
        bucket = self._buckets.get(origin)
        if bucket is not None and bucket.remove(token):
            logger.info(f"Invalidated token {token[:8]}... for {origin} ({len(bucket)} left)")
            self.persist()
        else:
            logger.debug(f"Token {token[:8]}... not in pool for {origin}, nothing to invalidate")
        return self.valid(origin)

    @staticmethod
    def pick_random(credentials: Sequence[Credential]) -> Optional[Credential]:
        """Uniformly pick one credential, or None from an empty sequence."""
        if not credentials:
            return None
        return random.choice(credentials)

    async def draw(self, origin: str, force: bool = False) -> Credential:
        """
        Acquire the pool and pick one credential at random.

        Raises:
            PoolExhaustedError: If no valid credential is available.
        """
        credential = self.pick_random(await self.acquire(origin, force=force))
        if credential is None:
            raise PoolExhaustedError(
                f"No valid session credential for {origin}", origin=origin
            )
        return credential

    def add(self, origin: str, credential: Credential) -> bool:
        """
        Insert a freshly issued credential and persist.

        Returns:
            True if it was stored, False for duplicates.
        """
        bucket = self._buckets.setdefault(origin, CredentialBucket(self.max_capacity))
        if not bucket.insert(credential):
            return False
        self.persist()
        return True

    def persist(self) -> None:
        self.store.save(self.snapshot())

    # =========================================
    # Introspection
    # =========================================

    def valid(self, origin: str) -> List[Credential]:
        """Valid credentials without pruning or replenishing."""
        bucket = self._buckets.get(origin)
        if bucket is None:
            return []
        return bucket.valid(self.clock())

    def snapshot(self) -> Dict[str, List[Credential]]:
        return {origin: list(bucket) for origin, bucket in self._buckets.items()}

    def origins(self) -> List[str]:
        return sorted(self._buckets)

    def stats(self, origin: str) -> Dict[str, object]:
        """Counts and soonest expiry for status reporting."""
        now = self.clock()
        bucket = self._buckets.get(origin)
        credentials = list(bucket) if bucket is not None else []
        valid = [c for c in credentials if c.is_valid(now)]
        return {
            "origin": origin,
            "total": len(credentials),
            "valid": len(valid),
            "next_expiry_seconds": min((c.remaining_seconds(now) for c in valid), default=None),
            "replenishing": bool(self.replenisher and self.replenisher.in_flight),
        }

    def _prune(self, origin: str) -> List[Credential]:
        bucket = self._buckets.get(origin)
        if bucket is None:
            return []
        now = self.clock()
        removed = bucket.prune(now)
        if removed:
            logger.info(f"Pruned {removed} expired credentials for {origin}")
            self.persist()
        return bucket.valid(now)

    def __contains__(self, item: object) -> bool:
        return any(item in bucket for bucket in self._buckets.values())
