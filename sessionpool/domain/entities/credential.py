"""
Credential entity representing one ephemeral origin session token.
"""

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Credential:
    """An access token with its creation and expiration times (epoch ms)."""

    token: str
    created_at: int
    expires_at: int

    def __post_init__(self) -> None:
        """Validate required fields after initialization."""
        if not self.token:
            raise ValueError("Credential token cannot be empty")
        if self.expires_at < self.created_at:
            raise ValueError("Credential cannot expire before it was created")

    @classmethod
    def issue(cls, token: str, lifetime: timedelta, now: Optional[int] = None) -> "Credential":
        """Create a credential valid for ``lifetime`` starting at ``now``."""
        created = now_ms() if now is None else now
        return cls(
            token=token,
            created_at=created,
            expires_at=created + int(lifetime.total_seconds() * 1000),
        )

    def is_valid(self, now: Optional[int] = None) -> bool:
        current = now_ms() if now is None else now
        return current < self.expires_at

    def remaining_seconds(self, now: Optional[int] = None) -> float:
        current = now_ms() if now is None else now
        return max(0.0, (self.expires_at - current) / 1000)

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot representation: token plus expiration/created epoch ms."""
        return {
            "token": self.token,
            "expiration": self.expires_at,
            "created": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        return cls(
            token=data["token"],
            created_at=int(data["created"]),
            expires_at=int(data["expiration"]),
        )

    def __repr__(self) -> str:
        # Never print whole tokens into logs
        return (
            f"Credential(token={self.token[:8]}..., "
            f"created_at={self.created_at}, expires_at={self.expires_at})"
        )
