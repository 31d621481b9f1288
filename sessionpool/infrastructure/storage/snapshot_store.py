"""Pool snapshot persistence.

This module saves and loads the credential pool as a single JSON
document of the form::

    {"co.uk": [{"token": "...", "expiration": 1700000600000, "created": 1700000000000}]}

The snapshot is a cache, not a source of truth: anything that cannot be
read back is deleted and the pool starts empty.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from sessionpool.domain.entities.credential import Credential
from sessionpool.domain.interfaces.store_interface import SnapshotStoreInterface
from sessionpool.utils.exceptions import CorruptStateError
from sessionpool.utils.logger import get_logger

logger = get_logger(__name__)


class SnapshotEntry(BaseModel):
    """Serialized form of one credential."""

    token: str = Field(..., min_length=1, description="Session token value")
    expiration: int = Field(..., ge=0, description="Expiry time in epoch ms")
    created: int = Field(..., ge=0, description="Creation time in epoch ms")

    def to_credential(self) -> Credential:
        return Credential.from_dict(self.model_dump())


_snapshot_adapter = TypeAdapter(Dict[str, List[SnapshotEntry]])


class JsonSnapshotStore(SnapshotStoreInterface):
    """JSON file backed snapshot store.

    Args:
        path: Location of the snapshot file. Parent directories are
            created on first save.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> Dict[str, List[Credential]]:
        """Load the snapshot, discarding it if it is unreadable.

        Returns:
            Mapping of origin key to credentials as stored
        """
        if not self.path.exists():
            logger.debug(f"No pool snapshot at {self.path}, starting empty")
            return {}

        try:
            snapshot = self._read()
        except CorruptStateError as e:
            logger.warning(f"{e}; deleting {self.path}")
            self.clear()
            return {}

        total = sum(len(credentials) for credentials in snapshot.values())
        logger.info(f"Loaded {total} credentials for {len(snapshot)} origins from {self.path}")
        return snapshot

    def _read(self) -> Dict[str, List[Credential]]:
        try:
            raw = self.path.read_text(encoding='utf-8')
            entries = _snapshot_adapter.validate_json(raw)
            return {
                origin: [entry.to_credential() for entry in origin_entries]
                for origin, origin_entries in entries.items()
            }
        except (OSError, UnicodeDecodeError, ValidationError, ValueError) as e:
            raise CorruptStateError(
                f"Pool snapshot is unreadable: {e.__class__.__name__}",
                path=str(self.path),
            ) from e

    def save(self, snapshot: Mapping[str, Sequence[Credential]]) -> None:
        """Write the snapshot atomically (temp file + rename).

        Write failures are logged and otherwise ignored; the in-memory
        pool stays authoritative.

        Args:
            snapshot: Mapping of origin key to credentials
        """
        data = {
            origin: [credential.to_dict() for credential in credentials]
            for origin, credentials in snapshot.items()
        }

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error(f"Failed to persist pool snapshot to {self.path}: {e}")
            return

        logger.debug(f"Persisted pool snapshot ({sum(len(c) for c in data.values())} credentials)")

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to delete pool snapshot {self.path}: {e}")
