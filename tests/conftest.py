"""Pytest fixtures: in-process fakes of the exchange ports and a wired orchestrator."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from config.loader import PolicyConfig
from ledger import PositionLedger, Side
from orchestrator.contracts import (
    CloseInstructionParams,
    ConfirmationResult,
    FillSimulation,
    OpenInstructionParams,
    Quote,
    StopLossNegotiationResult,
    UnsubmittedTx,
)
from orchestrator.core import PositionOrchestrator

SOL = 1_000_000_000
START = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeAdapter:
    """Deterministic curve: fixed price and quote, stop lands 2000 inside the target."""

    def __init__(self) -> None:
        self.price: int | None = 1_000_000
        self.quote_size = 5_000_000
        self.quote_end_price = 1_010_000
        self.suggested_size: int | None = None
        self.simulation_error: Exception | None = None
        self.reserve = 1_000_000_000_000
        self.negotiation: StopLossNegotiationResult | None = None
        self.negotiation_error: Exception | None = None
        self.stop_offset = 2_000
        self.calls: list[tuple[str, Any]] = []

    def current_price(self, instrument_id: str) -> int | None:
        self.calls.append(("current_price", instrument_id))
        return self.price

    def quote_buy_for_budget(self, price: int, budget: int) -> Quote | None:
        self.calls.append(("quote_buy", budget))
        return Quote(end_price=self.quote_end_price, size=self.quote_size) if self.quote_size else None

    def quote_sell_for_budget(self, price: int, budget: int) -> Quote | None:
        self.calls.append(("quote_sell", budget))
        return Quote(end_price=self.quote_end_price, size=self.quote_size) if self.quote_size else None

    def simulate_fill(self, instrument_id: str, size: int, side: Side) -> FillSimulation | None:
        self.calls.append(("simulate_fill", size))
        if self.simulation_error is not None:
            raise self.simulation_error
        return FillSimulation(suggested_size=self.suggested_size, completion_pct=100.0, slippage_pct=0.4)

    def negotiate_stop_loss(
        self, instrument_id: str, side: Side, size: int, target_price: int
    ) -> StopLossNegotiationResult | None:
        self.calls.append(("negotiate", (side, size, target_price)))
        if self.negotiation_error is not None:
            raise self.negotiation_error
        if self.negotiation is not None:
            return self.negotiation
        offset = self.stop_offset if side == Side.LONG else -self.stop_offset
        return StopLossNegotiationResult(
            executable_price=target_price + offset,
            prev_anchor="prev-anchor",
            next_anchor="next-anchor",
            leverage=4.2,
            stop_loss_percentage=14.8,
            trade_amount_estimate=size,
            iteration_count=3,
        )

    def borrow_reserve(self, instrument_id: str) -> int:
        self.calls.append(("borrow_reserve", instrument_id))
        return self.reserve

    def called(self, name: str) -> list[Any]:
        return [arg for call, arg in self.calls if call == name]


class FakeNetwork:
    """Wallet with a balance; opens cost ``open_cost``, closes return ``close_proceeds``."""

    def __init__(self) -> None:
        self.wallet = 100 * SOL
        self.open_cost = 1 * SOL
        self.close_proceeds = SOL // 2
        self.submit_error: Exception | None = None
        self.confirmation = ConfirmationResult(ok=True)
        self.confirm_error: Exception | None = None
        self.log_error: Exception | None = None
        self.balance_error_after_confirm: Exception | None = None
        self._confirmed = False
        self.logs = [
            "Program 11111111 invoke [1]",
            "Program log: Instruction: OpenMarginOrder",
            "Program log: stop loss placed",
            "Program 11111111 consumed 4200 of 200000 compute units",
        ]
        self.open_params: list[OpenInstructionParams] = []
        self.close_params: list[CloseInstructionParams] = []
        self.submitted: list[UnsubmittedTx] = []
        self._orders = itertools.count(1)
        self._txs = itertools.count(1)

    def build_open_instruction(self, params: OpenInstructionParams) -> UnsubmittedTx:
        self.open_params.append(params)
        return UnsubmittedTx(payload=("open", params), order_ref=f"order-{next(self._orders)}")

    def build_close_instruction(self, params: CloseInstructionParams) -> UnsubmittedTx:
        self.close_params.append(params)
        return UnsubmittedTx(payload=("close", params), order_ref=params.order_ref)

    def submit(self, tx: UnsubmittedTx) -> str:
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(tx)
        self._confirmed = False
        return f"tx-{next(self._txs)}"

    def await_confirmation(self, tx_ref: str) -> ConfirmationResult:
        if self.confirm_error is not None:
            raise self.confirm_error
        if self.confirmation.ok:
            self._confirmed = self.balance_error_after_confirm is not None
            kind = self.submitted[-1].payload[0]
            self.wallet += -self.open_cost if kind == "open" else self.close_proceeds
        return self.confirmation

    def fetch_execution_log(self, tx_ref: str) -> list[str]:
        if self.log_error is not None:
            raise self.log_error
        return list(self.logs)

    def balance(self) -> int:
        if self._confirmed and self.balance_error_after_confirm is not None:
            raise self.balance_error_after_confirm
        return self.wallet


class FakeResolver:
    def __init__(self, known: dict[str, str] | None = None) -> None:
        self.known = {"MYTOKEN": "mint-1"} if known is None else known
        self.lookups = 0

    def resolve_instrument(self, name: str) -> str | None:
        self.lookups += 1
        return self.known.get(name)


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def emit(self, event_type: str, **fields: Any) -> dict:
        record = {"event": event_type, **fields}
        self.events.append((event_type, record))
        return record

    def types(self) -> list[str]:
        return [t for t, _ in self.events]


class TickingClock:
    """Each call is one minute after the previous one."""

    def __init__(self, start: datetime = START) -> None:
        self._now = start

    def __call__(self) -> datetime:
        now = self._now
        self._now += timedelta(minutes=1)
        return now


class TickingTimer:
    def __init__(self, step: float = 0.25) -> None:
        self._t = 0.0
        self._step = step

    def __call__(self) -> float:
        self._t += self._step
        return self._t


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def ledger() -> PositionLedger:
    return PositionLedger()


@pytest.fixture
def policy() -> PolicyConfig:
    return PolicyConfig()


@pytest.fixture
def orchestrator(
    adapter: FakeAdapter,
    network: FakeNetwork,
    resolver: FakeResolver,
    ledger: PositionLedger,
    sink: RecordingSink,
    policy: PolicyConfig,
) -> PositionOrchestrator:
    return PositionOrchestrator(
        adapter,
        network,
        resolver,
        ledger,
        instrument="MYTOKEN",
        policy=policy,
        events=sink,
        clock=TickingClock(),
        timer=TickingTimer(),
    )
