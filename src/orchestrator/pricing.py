"""
Integer pricing rules for opening and closing positions.

All amounts are ints. Percentages arrive as floats from user input and are
converted through their decimal string (Fraction("0.15") == 15/100), so
the arithmetic is exact and rounding is an explicit floor.
"""

from __future__ import annotations

from fractions import Fraction

from ledger.models import Side


def _exact(value: float) -> Fraction:
    return Fraction(str(value))


def target_stop_price(current_price: int, adverse_move_pct: float, side: Side) -> int:
    """Analytical stop price before negotiation.

    LONG:  floor(current_price * (1 - pct))
    SHORT: floor(current_price * (1 + pct))
    """
    pct = _exact(adverse_move_pct)
    factor = 1 - pct if Side(side) == Side.LONG else 1 + pct
    return current_price * factor.numerator // factor.denominator


def stop_on_correct_side(side: Side, current_price: int, stop_price: int) -> bool:
    """A LONG stop sits strictly below the current price, a SHORT stop strictly above."""
    if Side(side) == Side.LONG:
        return 0 < stop_price < current_price
    return stop_price > current_price


def clamp_to_liquidity(requested: int, suggested: int | None) -> int:
    """Shrink *requested* to the simulator's suggestion; never grow it."""
    if suggested is not None and 0 < suggested < requested:
        return suggested
    return requested


def reserve_fields(budget: int, cap_multiple: int, margin_multiple: int) -> tuple[int, int]:
    """Spend cap and margin as fixed multiples of the budget.

    Returns (cap, margin).
    """
    return budget * cap_multiple, budget * margin_multiple


def close_amount(size: int, close_fraction: float) -> int:
    """Units to close for *close_fraction* percent of *size*.

    closed = floor(size * fraction / 100), so a partial close always leaves
    at least one unit. May return 0 for tiny fractions; the caller
    rejects that.
    """
    if close_fraction >= 100:
        return size
    fraction = _exact(close_fraction)
    return size * fraction.numerator // (fraction.denominator * 100)
