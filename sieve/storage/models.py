"""SQLAlchemy models for the dedup ledger."""

from datetime import datetime

from sqlalchemy import create_engine, Column, String, DateTime, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class LedgerRecordModel(Base):
    """One row per entry ever published, per feed. Insert-only."""
    __tablename__ = "ledger_records"

    feed_id = Column(String(255), primary_key=True)
    identity_key = Column(String(128), primary_key=True)

    first_seen_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    published_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('idx_ledger_published', 'feed_id', 'published_at'),
    )


def init_db(database_url: str):
    """Initialize database and create all tables."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Ledger calls run on worker threads
        connect_args = {"check_same_thread": False, "timeout": 15}
    engine = create_engine(database_url, echo=False, pool_pre_ping=True, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return engine
