"""Durable dedup ledger of published entries."""

from datetime import datetime
from typing import Optional, List
from pathlib import Path

from sqlalchemy import func, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
import structlog

from .models import LedgerRecordModel, init_db
from .interfaces import LedgerInterface, LedgerRecord
from ..config.settings import settings
from ..errors import DuplicateCommit, StorageUnavailable

logger = structlog.get_logger()


class DedupLedger(LedgerInterface):
    """SQL-backed ledger keyed by (feed_id, identity_key).

    Uniqueness is enforced by the table's primary key, so two concurrent
    commits for the same pair produce exactly one row and the loser gets
    DuplicateCommit.
    """

    def __init__(self, database_url: str = None):
        if database_url is None:
            database_url = settings.database_url

        # Ensure data directory exists
        if database_url.startswith("sqlite:///"):
            db_path = database_url.replace("sqlite:///", "")
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.database_url = database_url
        try:
            self.engine = init_db(database_url)
        except OperationalError as e:
            raise StorageUnavailable(f"cannot initialize ledger: {e}") from e
        self.Session = sessionmaker(bind=self.engine)

    def is_new(self, feed_id: str, identity_key: str) -> bool:
        """True iff no record exists for the pair."""
        session = self.Session()
        try:
            exists = session.query(LedgerRecordModel.identity_key)\
                .filter(LedgerRecordModel.feed_id == feed_id)\
                .filter(LedgerRecordModel.identity_key == identity_key)\
                .first()
            return exists is None
        except DBAPIError as e:
            raise StorageUnavailable(f"is_new failed: {e}") from e
        finally:
            session.close()

    def commit(
        self,
        feed_id: str,
        identity_key: str,
        published_at: datetime,
        first_seen_at: datetime = None
    ) -> LedgerRecord:
        """Insert a record for a published entry."""
        first_seen_at = first_seen_at or published_at
        session = self.Session()
        try:
            model = LedgerRecordModel(
                feed_id=feed_id,
                identity_key=identity_key,
                first_seen_at=first_seen_at,
                published_at=published_at,
            )
            session.add(model)
            session.commit()
            logger.debug("ledger_committed", feed=feed_id, key=identity_key[:12])
            return LedgerRecord(
                feed_id=feed_id,
                identity_key=identity_key,
                first_seen_at=first_seen_at,
                published_at=published_at,
            )
        except IntegrityError as e:
            session.rollback()
            logger.debug("ledger_duplicate", feed=feed_id, key=identity_key[:12])
            raise DuplicateCommit(feed_id, identity_key) from e
        except DBAPIError as e:
            session.rollback()
            raise StorageUnavailable(f"commit failed: {e}") from e
        finally:
            session.close()

    def get_record(self, feed_id: str, identity_key: str) -> Optional[LedgerRecord]:
        """Get the record for a pair, if any."""
        session = self.Session()
        try:
            model = session.get(LedgerRecordModel, (feed_id, identity_key))
            return self._model_to_record(model) if model else None
        except DBAPIError as e:
            raise StorageUnavailable(f"get_record failed: {e}") from e
        finally:
            session.close()

    def recent(self, feed_id: str, limit: int = 20) -> List[LedgerRecord]:
        """Most recently published records for a feed."""
        session = self.Session()
        try:
            models = session.query(LedgerRecordModel)\
                .filter(LedgerRecordModel.feed_id == feed_id)\
                .order_by(LedgerRecordModel.published_at.desc())\
                .limit(limit)\
                .all()
            return [self._model_to_record(m) for m in models]
        except DBAPIError as e:
            raise StorageUnavailable(f"recent failed: {e}") from e
        finally:
            session.close()

    def count(self, feed_id: str = None) -> int:
        """Number of records, optionally for one feed."""
        session = self.Session()
        try:
            query = session.query(LedgerRecordModel)
            if feed_id is not None:
                query = query.filter(LedgerRecordModel.feed_id == feed_id)
            return query.count()
        except DBAPIError as e:
            raise StorageUnavailable(f"count failed: {e}") from e
        finally:
            session.close()

    def ping(self) -> bool:
        """Round-trip to the store."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except DBAPIError as e:
            raise StorageUnavailable(f"ledger unreachable: {e}") from e

    def get_stats(self) -> dict:
        """Record counts per feed."""
        session = self.Session()
        try:
            rows = session.query(LedgerRecordModel.feed_id, func.count())\
                .group_by(LedgerRecordModel.feed_id)\
                .all()
            per_feed = {feed_id: n for feed_id, n in rows}
            return {
                "total_records": sum(per_feed.values()),
                "records_per_feed": per_feed,
            }
        except DBAPIError as e:
            raise StorageUnavailable(f"get_stats failed: {e}") from e
        finally:
            session.close()

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()

    def _model_to_record(self, model: LedgerRecordModel) -> LedgerRecord:
        """Convert database model to LedgerRecord."""
        return LedgerRecord(
            feed_id=model.feed_id,
            identity_key=model.identity_key,
            first_seen_at=model.first_seen_at,
            published_at=model.published_at,
        )
