# Scraper Package
"""
Origin-facing scraping components.

This module provides:
- SessionTokenFetcher: Landing page token acquisition
- RateLimiter: Base-plus-jitter request pacing
- URL and cookie helpers

The API consumers live in ``sessionpool.infrastructure.scraper.vinted_api``.
"""

from sessionpool.infrastructure.scraper.rate_limiter import (
    RateLimiter,
    RateLimiterConfig,
    create_rate_limiter_from_config,
)
from sessionpool.infrastructure.scraper.session_tokens import SessionTokenFetcher
from sessionpool.infrastructure.scraper.utils import (
    extract_access_token,
    extract_item_id_from_url,
    origin_base_url,
    origin_from_url,
    validate_url,
)

__all__ = [
    # Token acquisition
    "SessionTokenFetcher",
    # Rate limiting
    "RateLimiter",
    "RateLimiterConfig",
    "create_rate_limiter_from_config",
    # Helpers
    "extract_access_token",
    "extract_item_id_from_url",
    "origin_base_url",
    "origin_from_url",
    "validate_url",
]
