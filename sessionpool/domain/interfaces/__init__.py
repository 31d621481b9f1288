# Domain Interfaces Package
"""
Abstract base classes for infrastructure adapters.
"""

from .store_interface import SnapshotStoreInterface

__all__ = ["SnapshotStoreInterface"]
