"""
Background acquisition of new session credentials.

A run performs ``count`` sequential, paced token fetches and inserts
each new credential into the pool as soon as it arrives, so progress
survives a crash half-way through. Only one run may be active at a
time; the guard is a plain flag that is checked and set with no
suspension point in between.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, TYPE_CHECKING

from sessionpool.domain.entities.credential import Credential
from sessionpool.infrastructure.scraper.rate_limiter import RateLimiter
from sessionpool.utils.exceptions import ScraperError
from sessionpool.utils.logger import get_logger, log_exception, log_execution_time

if TYPE_CHECKING:
    from sessionpool.core.credential_pool import CredentialPool

logger = get_logger(__name__)

TokenFetcher = Callable[[str], Awaitable[Credential]]


@dataclass
class ReplenishStats:
    """
    Outcome of a replenishment run.

    Attributes:
        requested: Number of fetch attempts asked for.
        succeeded: New credentials stored in the pool.
        duplicates: Fetched credentials that were already pooled.
        failed: Attempts that produced no credential.
        skipped: True if another run was already active.
    """
    origin: str
    requested: int = 0
    succeeded: int = 0
    duplicates: int = 0
    failed: int = 0
    skipped: bool = False
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        if not self.start_time:
            return 0.0
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    def __str__(self) -> str:
        return (
            f"ReplenishStats(origin={self.origin}, "
            f"requested={self.requested}, "
            f"succeeded={self.succeeded}, "
            f"duplicates={self.duplicates}, "
            f"failed={self.failed}, "
            f"duration={self.duration_seconds:.1f}s)"
        )


class Replenisher:
    """
    Single-flight credential replenisher.

    Attributes:
        pool: Pool receiving the new credentials.
        fetch_token: Coroutine function issuing one credential for an origin.
        rate_limiter: Pacing applied before every attempt.
    """

    def __init__(
        self,
        pool: "CredentialPool",
        fetch_token: TokenFetcher,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.pool = pool
        self.fetch_token = fetch_token
        self.rate_limiter = rate_limiter or RateLimiter()
        self._is_fetching = False
        self.last_stats: Optional[ReplenishStats] = None

    @property
    def in_flight(self) -> bool:
        return self._is_fetching

    async def replenish(self, origin: str, count: int) -> ReplenishStats:
        """
        Fetch up to ``count`` new credentials for an origin.

        Never raises: individual failures are counted and the run moves on
        to the next attempt. A run that yields nothing leaves the pool as
        it was.

        Args:
            origin: Origin key to replenish.
            count: Number of sequential fetch attempts.

        Returns:
            Statistics of the run, with ``skipped`` set if a run was
            already active.
        """
        stats = ReplenishStats(origin=origin, requested=count)

        if self._is_fetching:
            logger.info(f"Replenishment already in progress, not starting another for {origin}")
            stats.skipped = True
            return stats

        self._is_fetching = True
        stats.start_time = datetime.now()
        try:
            with log_execution_time(logger, f"replenishing {origin}"):
                for attempt in range(1, count + 1):
                    await self._attempt(origin, attempt, count, stats)
        finally:
            self._is_fetching = False
            stats.end_time = datetime.now()
            self.pool.persist()
            self.last_stats = stats

        logger.info(
            f"Replenishment for {origin} finished: {stats.succeeded} added, "
            f"{stats.duplicates} duplicates, {stats.failed} failed "
            f"({len(self.pool.valid(origin))} valid now)"
        )
        return stats

    async def _attempt(self, origin: str, attempt: int, count: int, stats: ReplenishStats) -> None:
        await self.rate_limiter.wait()
        logger.debug(f"Fetching session token {attempt}/{count} for {origin}")

        try:
            credential = await self.fetch_token(origin)
        except ScraperError as e:
            stats.failed += 1
            logger.warning(f"Token fetch {attempt}/{count} for {origin} failed: {e}")
            return
        except Exception as e:
            stats.failed += 1
            log_exception(logger, f"token fetch {attempt}/{count} for {origin}", e)
            return

        if self.pool.add(origin, credential):
            stats.succeeded += 1
        else:
            stats.duplicates += 1
            logger.debug(f"Discarded duplicate token for {origin}")
