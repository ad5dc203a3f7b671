"""Factory functions to create the ledger.

The database type is detected from DATABASE_URL:
- PostgreSQL for production
- SQLite for local development
"""

import os
from functools import lru_cache

import structlog

logger = structlog.get_logger()


def get_database_url() -> str:
    """Get database URL from environment, with fallback to SQLite."""
    # Check for DATABASE_URL first (standard for cloud platforms)
    url = os.environ.get('DATABASE_URL')
    if url:
        return _normalize_url(url)

    url = os.environ.get('SIEVE_DATABASE_URL')
    if url:
        return _normalize_url(url)

    # Default to SQLite for local development
    from ..config.settings import settings
    return settings.database_url


def is_postgres() -> bool:
    """Check if we're using PostgreSQL."""
    url = get_database_url()
    return url.startswith('postgresql')


def _normalize_url(url: str) -> str:
    # SQLAlchemy only accepts the postgresql:// scheme
    if url.startswith('postgres://'):
        return 'postgresql://' + url[len('postgres://'):]
    return url


@lru_cache(maxsize=1)
def get_ledger():
    """Get the shared DedupLedger instance."""
    from .ledger import DedupLedger

    url = get_database_url()
    logger.info("using_ledger", backend="postgres" if is_postgres() else "sqlite", url=url[:40] + "...")
    return DedupLedger(url)


def clear_cache():
    """Clear cached instances (useful for testing)."""
    get_ledger.cache_clear()
