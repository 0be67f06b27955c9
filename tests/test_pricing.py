"""Tests for integer pricing rules: exact stop targets, clamp, reserve fields, close sizing."""

import pytest

from ledger import Side
from orchestrator.pricing import (
    clamp_to_liquidity,
    close_amount,
    reserve_fields,
    stop_on_correct_side,
    target_stop_price,
)


class TestTargetStop:
    def test_long_fifteen_percent(self) -> None:
        assert target_stop_price(1_000_000, 0.15, Side.LONG) == 850_000

    def test_short_fifteen_percent(self) -> None:
        assert target_stop_price(1_000_000, 0.15, Side.SHORT) == 1_150_000

    def test_exact_for_values_floats_round_badly(self) -> None:
        # 0.29 * 100 is 28.999999999999996 in binary floating point
        assert target_stop_price(100, 0.29, Side.LONG) == 71
        assert target_stop_price(100, 0.29, Side.SHORT) == 129

    def test_floors(self) -> None:
        assert target_stop_price(999, 0.15, Side.LONG) == 849
        assert target_stop_price(999, 0.15, Side.SHORT) == 1148

    def test_arbitrary_precision(self) -> None:
        price = 10**30 + 7
        assert target_stop_price(price, 0.1, Side.LONG) == price * 9 // 10


class TestStopSide:
    @pytest.mark.parametrize(
        "side, stop, ok",
        [
            (Side.LONG, 999, True),
            (Side.LONG, 1000, False),
            (Side.LONG, 0, False),
            (Side.SHORT, 1001, True),
            (Side.SHORT, 1000, False),
        ],
    )
    def test_strict_inequality(self, side, stop, ok) -> None:
        assert stop_on_correct_side(side, 1000, stop) is ok


class TestClamp:
    def test_shrinks(self) -> None:
        assert clamp_to_liquidity(5_000_000, 3_000_000) == 3_000_000

    def test_never_grows(self) -> None:
        assert clamp_to_liquidity(5_000_000, 6_000_000) == 5_000_000

    def test_ignores_missing_or_zero_suggestion(self) -> None:
        assert clamp_to_liquidity(5_000_000, None) == 5_000_000
        assert clamp_to_liquidity(5_000_000, 0) == 5_000_000


def test_reserve_fields() -> None:
    assert reserve_fields(1_000_000_000, 2, 5) == (2_000_000_000, 5_000_000_000)


class TestCloseAmount:
    def test_full(self) -> None:
        assert close_amount(1234, 100) == 1234

    def test_half_floors(self) -> None:
        assert close_amount(1235, 50) == 617

    def test_fractional_percent(self) -> None:
        assert close_amount(1_000_000, 12.5) == 125_000

    def test_tiny_fraction_rounds_to_zero(self) -> None:
        assert close_amount(10, 5) == 0
