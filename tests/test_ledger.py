"""Tests for PositionLedger: ordering, partial closes, invariants, snapshots."""

from datetime import datetime, timedelta, timezone

import pytest

from ledger import (
    DuplicatePosition,
    HistoryStatus,
    OrderingKey,
    Position,
    PositionLedger,
    Side,
    TradeHistoryEntry,
)

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _pos(ref: str, side: Side = Side.LONG, minutes: int = 0, size: int = 1_000, instrument: str = "mint-1") -> Position:
    return Position(
        order_ref=ref,
        instrument_id=instrument,
        side=side,
        size=size,
        margin=size * 10,
        close_price=900,
        opened_at=T0 + timedelta(minutes=minutes),
        leverage=3.0,
    )


def _entry(kind: str = "long", status: HistoryStatus = HistoryStatus.COMPLETED) -> TradeHistoryEntry:
    return TradeHistoryEntry(type=kind, description=kind, status=status, duration_s=1.0, recorded_at=T0)


@pytest.fixture
def book() -> PositionLedger:
    ledger = PositionLedger()
    ledger.add_position(_pos("b", minutes=2))
    ledger.add_position(_pos("a", minutes=1))
    ledger.add_position(_pos("c", minutes=3))
    ledger.add_position(_pos("s", side=Side.SHORT, minutes=0))
    return ledger


class TestQuery:
    def test_ascending(self, book: PositionLedger) -> None:
        assert [p.order_ref for p in book.query_positions(Side.LONG, OrderingKey.START_TIME_ASC)] == ["a", "b", "c"]

    def test_descending(self, book: PositionLedger) -> None:
        assert [p.order_ref for p in book.query_positions(Side.LONG, OrderingKey.START_TIME_DESC)] == ["c", "b", "a"]

    def test_side_filter(self, book: PositionLedger) -> None:
        assert [p.order_ref for p in book.query_positions(Side.SHORT)] == ["s"]

    def test_instrument_filter(self, book: PositionLedger) -> None:
        book.add_position(_pos("x", minutes=9, instrument="mint-2"))
        refs = [p.order_ref for p in book.query_positions(Side.LONG, instrument_id="mint-2")]
        assert refs == ["x"]

    def test_ties_keep_insertion_order(self) -> None:
        ledger = PositionLedger()
        for ref in ("first", "second", "third"):
            ledger.add_position(_pos(ref))
        asc = [p.order_ref for p in ledger.query_positions(Side.LONG, OrderingKey.START_TIME_ASC)]
        desc = [p.order_ref for p in ledger.query_positions(Side.LONG, OrderingKey.START_TIME_DESC)]
        assert asc == ["first", "second", "third"]
        assert desc == ["third", "second", "first"]


class TestAdd:
    def test_duplicate_rejected(self, book: PositionLedger) -> None:
        with pytest.raises(DuplicatePosition):
            book.add_position(_pos("a"))
        assert len(book) == 4

    def test_non_positive_size_rejected(self) -> None:
        with pytest.raises(ValueError):
            PositionLedger().add_position(_pos("z", size=0))


class TestReduce:
    def test_full_close_removes(self, book: PositionLedger) -> None:
        assert book.reduce_or_remove_position("a", 1_000) is None
        assert book.get("a") is None

    def test_partial_close_shrinks(self, book: PositionLedger) -> None:
        closed_at = T0 + timedelta(hours=1)
        updated = book.reduce_or_remove_position("a", 250, close_fraction=25, closed_at=closed_at)
        assert updated.size == 750
        assert updated.margin == 7_500
        assert updated.partial_closes[0].closed_size == 250
        assert updated.partial_closes[0].closed_at == closed_at
        assert book.get("a") == updated

    def test_partial_closes_accumulate(self, book: PositionLedger) -> None:
        book.reduce_or_remove_position("a", 500, close_fraction=50)
        updated = book.reduce_or_remove_position("a", 250, close_fraction=50)
        assert updated.size == 250
        assert len(updated.partial_closes) == 2

    def test_unknown_ref(self, book: PositionLedger) -> None:
        with pytest.raises(KeyError):
            book.reduce_or_remove_position("nope", 1)

    @pytest.mark.parametrize("amount", [0, -1, 1_001])
    def test_invalid_amount(self, book: PositionLedger, amount: int) -> None:
        with pytest.raises(ValueError):
            book.reduce_or_remove_position("a", amount)
        assert book.get("a").size == 1_000


class TestHistory:
    def test_append_order_and_limit(self) -> None:
        ledger = PositionLedger()
        for kind in ("long", "short", "close_long"):
            ledger.append_history(_entry(kind))
        assert [e.type for e in ledger.history()] == ["long", "short", "close_long"]
        assert [e.type for e in ledger.history(limit=2)] == ["short", "close_long"]
        assert ledger.history(limit=0) == []


class TestSnapshot:
    def test_round_trip(self, book: PositionLedger) -> None:
        book.reduce_or_remove_position("b", 400, close_fraction=40)
        book.append_history(_entry("close_long"))
        book.append_history(_entry("short", HistoryStatus.ERROR))

        restored = PositionLedger()
        restored.restore(book.snapshot())
        assert sorted(restored.positions(), key=lambda p: p.order_ref) == sorted(
            book.positions(), key=lambda p: p.order_ref
        )
        assert restored.history() == book.history()

    def test_big_amounts_survive(self) -> None:
        ledger = PositionLedger()
        ledger.add_position(_pos("big", size=2**80))
        snap = ledger.snapshot()
        assert snap["positions"][0]["size"] == str(2**80)
        restored = PositionLedger()
        restored.restore(snap)
        assert restored.get("big").size == 2**80
