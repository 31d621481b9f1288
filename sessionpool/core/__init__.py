# Core Package
"""
Credential pool and its replenisher.
"""

from sessionpool.core.credential_pool import CredentialBucket, CredentialPool
from sessionpool.core.replenisher import ReplenishStats, Replenisher, TokenFetcher

__all__ = [
    "CredentialBucket",
    "CredentialPool",
    "ReplenishStats",
    "Replenisher",
    "TokenFetcher",
]
