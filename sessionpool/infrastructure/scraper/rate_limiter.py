"""
Rate limiter for paced origin requests.

Every call to ``wait`` sleeps a fixed base delay plus random jitter so
consecutive token acquisitions never arrive in a tight, regular burst.

Example:
    >>> limiter = RateLimiter(base_delay=0.5, max_jitter=1.0)
    >>> await limiter.wait()  # Waits 0.5-1.5 seconds
    >>> await limiter.wait()  # And again before the next request
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Optional

from sessionpool.utils.config import ReplenishConfig
from sessionpool.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimiterConfig:
    """
    Configuration for the rate limiter.

    Attributes:
        base_delay: Delay always applied before a request, in seconds.
        max_jitter: Upper bound of the uniform random delay added on top.
    """
    base_delay: float = 0.5
    max_jitter: float = 1.0


class RateLimiter:
    """
    Base-plus-jitter pacing delay.

    Attributes:
        config: Rate limiter configuration.
        total_waited: Seconds slept since creation or the last reset.
    """

    def __init__(
        self,
        base_delay: float = 0.5,
        max_jitter: float = 1.0,
        config: Optional[RateLimiterConfig] = None,
    ):
        """
        Initialize the rate limiter.

        Args:
            base_delay: Fixed delay in seconds.
            max_jitter: Maximum random extra delay in seconds.
            config: Full configuration object (overrides the other args).
        """
        if config:
            self.config = config
        else:
            self.config = RateLimiterConfig(base_delay=base_delay, max_jitter=max_jitter)

        if self.config.base_delay < 0 or self.config.max_jitter < 0:
            raise ValueError("Rate limiter delays must be non-negative")

        self.total_waited: float = 0.0
        logger.debug(
            f"RateLimiter initialized: {self.config.base_delay}s "
            f"+ up to {self.config.max_jitter}s jitter"
        )

    def _get_random_delay(self) -> float:
        return self.config.base_delay + random.uniform(0.0, self.config.max_jitter)

    async def wait(self) -> float:
        """
        Sleep before the next request.

        Returns:
            The delay in seconds.
        """
        delay = self._get_random_delay()
        logger.debug(f"Pacing: waiting {delay:.2f}s")
        await asyncio.sleep(delay)
        self.total_waited += delay
        return delay

    def reset(self) -> None:
        self.total_waited = 0.0


def create_rate_limiter_from_config(config: ReplenishConfig) -> RateLimiter:
    """
    Create a rate limiter from the replenish section of the config.

    Returns:
        RateLimiter configured from config.yaml.
    """
    return RateLimiter(
        base_delay=config.base_delay_seconds,
        max_jitter=config.max_jitter_seconds,
    )
