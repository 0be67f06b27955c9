"""Tests for the SQLite ledger store."""

from datetime import datetime, timezone
from pathlib import Path

from ledger import HistoryStatus, LedgerStore, Position, PositionLedger, Side, TradeHistoryEntry

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _ledger() -> PositionLedger:
    ledger = PositionLedger()
    ledger.add_position(
        Position(
            order_ref="order-1",
            instrument_id="mint-1",
            side=Side.SHORT,
            size=10**24,
            margin=5 * 10**9,
            close_price=1_148_000,
            opened_at=T0,
            leverage=None,
            stop_loss_percentage=14.8,
        )
    )
    ledger.append_history(
        TradeHistoryEntry(
            type="short",
            description="short 1",
            status=HistoryStatus.COMPLETED,
            duration_s=2.5,
            recorded_at=T0,
            tx_ref="tx-1",
            params={"budget": "1000000000"},
            result={"order_ref": "order-1"},
        )
    )
    return ledger


def test_empty_store(tmp_path: Path) -> None:
    assert LedgerStore(tmp_path / "ledger.db").load() == {"positions": [], "history": []}


def test_save_and_load(tmp_path: Path) -> None:
    store = LedgerStore(tmp_path / "nested" / "ledger.db")
    ledger = _ledger()
    store.save(ledger.snapshot())

    restored = PositionLedger()
    restored.restore(store.load())
    assert restored.positions() == ledger.positions()
    assert restored.history() == ledger.history()


def test_positions_replaced_history_appended(tmp_path: Path) -> None:
    store = LedgerStore(tmp_path / "ledger.db")
    ledger = _ledger()
    store.save(ledger.snapshot())

    ledger.reduce_or_remove_position("order-1", 10**24)
    ledger.append_history(
        TradeHistoryEntry(
            type="close_short",
            description="close",
            status=HistoryStatus.ERROR,
            duration_s=0.5,
            recorded_at=T0,
            error="boom",
        )
    )
    store.save(ledger.snapshot())
    store.save(ledger.snapshot())

    snap = store.load()
    assert snap["positions"] == []
    assert [h["type"] for h in snap["history"]] == ["short", "close_short"]
    assert snap["history"][1]["error"] == "boom"
