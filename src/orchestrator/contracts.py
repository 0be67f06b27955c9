"""
Data contracts for the position orchestrator.

Inputs (OpenIntent, ClosePolicy, plan steps), values returned by the
exchange adapter (Quote, FillSimulation, StopLossNegotiationResult),
instruction requests handed to the network client, and the results
returned to the plan runner. No I/O; these are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from ledger.models import OrderingKey, Side

DEFAULT_BUDGET = 1_000_000_000  # 1 SOL in lamports
DEFAULT_LONG_ADVERSE_PCT = 0.10
DEFAULT_SHORT_ADVERSE_PCT = 0.15


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OpenIntent:
    """User-level open request: spend *budget*, accept *adverse_move_pct* against us."""

    budget: int
    adverse_move_pct: float

    def __post_init__(self) -> None:
        if isinstance(self.budget, bool) or not isinstance(self.budget, int):
            raise TypeError(f"budget must be an int, got {type(self.budget).__name__}")
        if self.budget <= 0:
            raise ValueError(f"budget must be positive, got {self.budget}")
        if not 0 < self.adverse_move_pct < 1:
            raise ValueError(f"adverse_move_pct must be in (0, 1), got {self.adverse_move_pct}")


@dataclass(frozen=True)
class ClosePolicy:
    """Which open position to close and how much of it (percent, 0 < f <= 100)."""

    ordering_key: OrderingKey = OrderingKey.START_TIME_DESC
    close_fraction: float = 100.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "ordering_key", OrderingKey(self.ordering_key))
        if not 0 < self.close_fraction <= 100:
            raise ValueError(f"close_fraction must be in (0, 100], got {self.close_fraction}")

    @property
    def is_full(self) -> bool:
        return self.close_fraction >= 100


# ---------------------------------------------------------------------------
# Plan steps (one variant per step type)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OpenLong:
    budget: int = DEFAULT_BUDGET
    adverse_move_pct: float = DEFAULT_LONG_ADVERSE_PCT
    description: str = ""

    side: ClassVar[Side] = Side.LONG
    kind: ClassVar[str] = "long"

    def __post_init__(self) -> None:
        self.intent()

    def intent(self) -> OpenIntent:
        return OpenIntent(budget=self.budget, adverse_move_pct=self.adverse_move_pct)


@dataclass(frozen=True)
class OpenShort:
    budget: int = DEFAULT_BUDGET
    adverse_move_pct: float = DEFAULT_SHORT_ADVERSE_PCT
    description: str = ""

    side: ClassVar[Side] = Side.SHORT
    kind: ClassVar[str] = "short"

    def __post_init__(self) -> None:
        self.intent()

    def intent(self) -> OpenIntent:
        return OpenIntent(budget=self.budget, adverse_move_pct=self.adverse_move_pct)


@dataclass(frozen=True)
class CloseLong:
    policy: ClosePolicy = field(default_factory=ClosePolicy)
    description: str = ""

    side: ClassVar[Side] = Side.LONG
    kind: ClassVar[str] = "close_long"


@dataclass(frozen=True)
class CloseShort:
    policy: ClosePolicy = field(default_factory=ClosePolicy)
    description: str = ""

    side: ClassVar[Side] = Side.SHORT
    kind: ClassVar[str] = "close_short"


PlanStep = Union[OpenLong, OpenShort, CloseLong, CloseShort]


# ---------------------------------------------------------------------------
# Adapter values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Quote:
    """Bonding-curve quote for a budget: price after the trade and size obtained."""

    end_price: int
    size: int


@dataclass(frozen=True)
class FillSimulation:
    """Liquidity simulation of a fill. suggested_size is the largest size that fills."""

    suggested_size: int | None = None
    suggested_budget: int | None = None
    completion_pct: float | None = None
    slippage_pct: float | None = None


@dataclass(frozen=True)
class StopLossNegotiationResult:
    """Executable stop price plus insertion anchors in the resting-order list."""

    executable_price: int | None
    prev_anchor: str | None = None
    next_anchor: str | None = None
    leverage: float | None = None
    stop_loss_percentage: float | None = None
    trade_amount_estimate: int | None = None
    iteration_count: int = 0


# ---------------------------------------------------------------------------
# Instruction requests and network values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OpenInstructionParams:
    """Open-order instruction. LONG carries max_spend, SHORT carries min_output."""

    instrument_id: str
    side: Side
    size: int
    margin: int
    close_price: int
    prev_anchor: str | None
    next_anchor: str | None
    max_spend: int | None = None
    min_output: int | None = None


@dataclass(frozen=True)
class CloseInstructionParams:
    """Close-order instruction. LONG closes carry min_output, SHORT closes max_input."""

    instrument_id: str
    side: Side
    order_ref: str
    size: int
    min_output: int | None = None
    max_input: int | None = None


@dataclass(frozen=True)
class UnsubmittedTx:
    """Built but unsigned transaction. order_ref names the order an open creates."""

    payload: Any
    order_ref: str | None = None


@dataclass(frozen=True)
class ConfirmationResult:
    ok: bool
    error: str | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OpenResult:
    order_ref: str
    side: Side
    size: int
    margin: int
    close_price: int
    leverage: float | None
    tx_ref: str
    max_spend: int | None = None
    spent: int | None = 0
    duration_s: float = 0.0
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class CloseResult:
    order_ref: str
    side: Side
    realized_size: int
    proceeds: int | None
    tx_ref: str
    remaining_size: int = 0
    duration_s: float = 0.0

    @property
    def fully_closed(self) -> bool:
        return self.remaining_size == 0
