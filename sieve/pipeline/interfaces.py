"""Cycle outcome types."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class CycleStatus(Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


@dataclass
class PollCycleResult:
    """Outcome of one fetch-through-commit pass for a feed. Not persisted."""
    feed_id: str
    status: CycleStatus = CycleStatus.SUCCESS
    entries_seen: int = 0
    entries_new: int = 0
    entries_published: int = 0
    entries_failed: int = 0
    unchanged: bool = False
    interrupted: bool = False
    error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    elapsed_ms: int = 0

    def fail(self, error: str) -> None:
        self.status = CycleStatus.FAILURE
        self.error = error

    def entry_failed(self, error: str) -> None:
        self.entries_failed += 1
        self.error = error
        if self.status is CycleStatus.SUCCESS:
            self.status = CycleStatus.PARTIAL

    def to_dict(self) -> dict:
        return {
            "feed_id": self.feed_id,
            "status": self.status.value,
            "entries_seen": self.entries_seen,
            "entries_new": self.entries_new,
            "entries_published": self.entries_published,
            "entries_failed": self.entries_failed,
            "unchanged": self.unchanged,
            "interrupted": self.interrupted,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "elapsed_ms": self.elapsed_ms,
        }
