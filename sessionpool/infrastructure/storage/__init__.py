# Storage Package
"""
Persistence adapters for the credential pool.
"""

from sessionpool.infrastructure.storage.snapshot_store import JsonSnapshotStore, SnapshotEntry

__all__ = ["JsonSnapshotStore", "SnapshotEntry"]
