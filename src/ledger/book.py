"""
Position ledger: open long/short positions plus the trade-history log.

Single source of truth for what the bot believes is open on chain.
Positions are frozen dataclasses; every mutation swaps in a new object
under the side's lock, so readers never observe a half-updated position.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterator

from ledger.models import (
    OrderingKey,
    PartialClose,
    Position,
    Side,
    TradeHistoryEntry,
)

logger = logging.getLogger("mbot.ledger")


class DuplicatePosition(ValueError):
    """Raised when a position with an existing order_ref is added."""


class PositionLedger:
    """In-memory position book and history, persisted through snapshot()/restore().

    Mutations of one side are serialized by a per-side re-entrant lock.
    Callers that select and then mutate (closing a position) hold
    ``side_lock(side)`` across both steps.
    """

    def __init__(self) -> None:
        self._positions: dict[str, Position] = {}
        self._history: list[TradeHistoryEntry] = []
        self._locks = {side: threading.RLock() for side in Side}
        self._history_lock = threading.Lock()

    def side_lock(self, side: Side) -> threading.RLock:
        return self._locks[Side(side)]

    # ---------- positions ----------

    def add_position(self, position: Position) -> None:
        if position.size <= 0:
            raise ValueError(f"Position {position.order_ref} has non-positive size {position.size}")
        with self._locks[position.side]:
            if position.order_ref in self._positions:
                raise DuplicatePosition(f"Position {position.order_ref} is already in the ledger")
            self._positions[position.order_ref] = position
        logger.info(
            "Added %s position %s size=%d margin=%d close_price=%d",
            position.side.value, position.order_ref, position.size, position.margin, position.close_price,
        )

    def get(self, order_ref: str) -> Position | None:
        return self._positions.get(order_ref)

    def reduce_or_remove_position(
        self,
        order_ref: str,
        closed_size: int,
        *,
        close_fraction: float = 100.0,
        closed_at: datetime | None = None,
    ) -> Position | None:
        """Apply a confirmed close of *closed_size* units.

        Removes the position when the whole size is closed and returns None.
        Otherwise shrinks size, reduces margin proportionally, records a
        PartialClose and returns the updated position.
        """
        current = self._positions.get(order_ref)
        if current is None:
            raise KeyError(order_ref)
        with self._locks[current.side]:
            current = self._positions.get(order_ref)
            if current is None:
                raise KeyError(order_ref)
            if closed_size <= 0 or closed_size > current.size:
                raise ValueError(
                    f"Cannot close {closed_size} of position {order_ref} with size {current.size}"
                )
            if closed_size == current.size:
                del self._positions[order_ref]
                logger.info("Removed %s position %s", current.side.value, order_ref)
                return None

            remaining = current.size - closed_size
            record = PartialClose(
                closed_at=closed_at or datetime.now(timezone.utc),
                closed_size=closed_size,
                close_fraction=close_fraction,
            )
            updated = replace(
                current,
                size=remaining,
                margin=current.margin * remaining // current.size,
                partial_closes=current.partial_closes + (record,),
            )
            self._positions[order_ref] = updated
        logger.info(
            "Reduced %s position %s by %d (%.2f%%), remaining=%d",
            updated.side.value, order_ref, closed_size, close_fraction, remaining,
        )
        return updated

    def query_positions(
        self,
        side: Side,
        ordering_key: OrderingKey = OrderingKey.START_TIME_ASC,
        *,
        instrument_id: str | None = None,
    ) -> list[Position]:
        """Open positions of *side*, ordered by opened_at.

        Ties keep insertion order (ascending) or reverse insertion order
        (descending).
        """
        side = Side(side)
        with self._locks[side]:
            matches = [
                p for p in self._positions.values()
                if p.side == side and (instrument_id is None or p.instrument_id == instrument_id)
            ]
        ordered = sorted(matches, key=lambda p: p.opened_at)
        if OrderingKey(ordering_key) == OrderingKey.START_TIME_DESC:
            ordered.reverse()
        return ordered

    def positions(self) -> list[Position]:
        return list(self._positions.values())

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[Position]:
        return iter(self.positions())

    # ---------- history ----------

    def append_history(self, entry: TradeHistoryEntry) -> None:
        with self._history_lock:
            self._history.append(entry)

    def history(self, limit: int | None = None) -> list[TradeHistoryEntry]:
        """History entries, oldest first; *limit* keeps the most recent N."""
        with self._history_lock:
            entries = list(self._history)
        if limit is not None:
            return entries[-limit:] if limit > 0 else []
        return entries

    # ---------- persistence ----------

    def snapshot(self) -> dict[str, Any]:
        with self._locks[Side.LONG], self._locks[Side.SHORT], self._history_lock:
            return {
                "positions": [p.to_record() for p in self._positions.values()],
                "history": [h.to_record() for h in self._history],
            }

    def restore(self, snapshot: dict[str, Any]) -> None:
        """Replace ledger contents with a snapshot produced by snapshot()."""
        positions: dict[str, Position] = {}
        for raw in snapshot.get("positions", []):
            position = Position.from_record(raw)
            if position.order_ref in positions:
                raise DuplicatePosition(f"Snapshot holds {position.order_ref} twice")
            positions[position.order_ref] = position
        history = [TradeHistoryEntry.from_record(raw) for raw in snapshot.get("history", [])]
        with self._locks[Side.LONG], self._locks[Side.SHORT], self._history_lock:
            self._positions = positions
            self._history = history
        logger.info("Restored ledger: %d open positions, %d history entries", len(positions), len(history))
