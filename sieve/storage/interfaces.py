"""Interface definitions for the dedup ledger."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List


@dataclass(frozen=True)
class LedgerRecord:
    """Proof that an entry was published and acknowledged."""
    feed_id: str
    identity_key: str
    first_seen_at: datetime
    published_at: datetime

    def to_dict(self) -> dict:
        return {
            "feed_id": self.feed_id,
            "identity_key": self.identity_key,
            "first_seen_at": self.first_seen_at.isoformat(),
            "published_at": self.published_at.isoformat(),
        }


class LedgerInterface:
    """Interface for the dedup ledger."""

    def is_new(self, feed_id: str, identity_key: str) -> bool:
        """True iff no record exists for the pair."""
        raise NotImplementedError

    def commit(
        self,
        feed_id: str,
        identity_key: str,
        published_at: datetime,
        first_seen_at: datetime = None
    ) -> LedgerRecord:
        """Insert a record. Raises DuplicateCommit if the pair exists."""
        raise NotImplementedError

    def get_record(self, feed_id: str, identity_key: str) -> Optional[LedgerRecord]:
        raise NotImplementedError

    def recent(self, feed_id: str, limit: int = 20) -> List[LedgerRecord]:
        raise NotImplementedError

    def ping(self) -> bool:
        """Raise StorageUnavailable if the store is unreachable."""
        raise NotImplementedError
