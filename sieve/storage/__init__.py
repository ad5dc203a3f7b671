"""Dedup ledger storage."""

from .interfaces import LedgerInterface, LedgerRecord
from .ledger import DedupLedger
from .models import LedgerRecordModel, init_db

__all__ = ["LedgerInterface", "LedgerRecord", "DedupLedger", "LedgerRecordModel", "init_db"]
