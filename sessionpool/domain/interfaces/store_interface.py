"""
Abstract interface for credential pool persistence.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Sequence

from sessionpool.domain.entities.credential import Credential


class SnapshotStoreInterface(ABC):
    """
    Abstract base class for pool snapshot stores.

    A store holds a best-effort copy of the pool: it is read once when
    the pool starts and overwritten after every pool mutation.
    """

    @abstractmethod
    def load(self) -> Dict[str, List[Credential]]:
        """
        Load the persisted snapshot.

        Returns:
            Mapping of origin key to credentials. An absent or unreadable
            snapshot yields an empty mapping, never an error.
        """
        pass

    @abstractmethod
    def save(self, snapshot: Mapping[str, Sequence[Credential]]) -> None:
        """
        Replace the persisted snapshot.

        Args:
            snapshot: Mapping of origin key to credentials, newest first.
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove the persisted snapshot."""
        pass
