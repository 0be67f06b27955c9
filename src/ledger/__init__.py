"""
Position ledger: open positions + trade history, snapshot/restore to SQLite.
Single writer; restart-safe.
"""

from ledger.book import DuplicatePosition, PositionLedger
from ledger.models import (
    HistoryStatus,
    OrderingKey,
    PartialClose,
    Position,
    Side,
    TradeHistoryEntry,
)
from ledger.store import LedgerStore

__all__ = [
    "DuplicatePosition",
    "HistoryStatus",
    "LedgerStore",
    "OrderingKey",
    "PartialClose",
    "Position",
    "PositionLedger",
    "Side",
    "TradeHistoryEntry",
]
