"""
Collaborator protocols consumed by the orchestrator.

Implement per venue. gateway.BridgeClient implements all three against
an exchange SDK sidecar; tests use in-process fakes. Calls are
synchronous: each returns only when the remote round-trip completes.
"""

from typing import Any, Protocol

from ledger.models import Side
from orchestrator.contracts import (
    CloseInstructionParams,
    ConfirmationResult,
    FillSimulation,
    OpenInstructionParams,
    Quote,
    StopLossNegotiationResult,
    UnsubmittedTx,
)


class ExchangeAdapter(Protocol):
    """Pricing, quoting and liquidity simulation for a bonding-curve market."""

    def current_price(self, instrument_id: str) -> int | None:
        ...

    def quote_buy_for_budget(self, price: int, budget: int) -> Quote | None:
        ...

    def quote_sell_for_budget(self, price: int, budget: int) -> Quote | None:
        ...

    def simulate_fill(self, instrument_id: str, size: int, side: Side) -> FillSimulation | None:
        ...

    def negotiate_stop_loss(
        self,
        instrument_id: str,
        side: Side,
        size: int,
        target_price: int,
    ) -> StopLossNegotiationResult | None:
        """Refine *target_price* to an executable stop and locate list anchors."""
        ...

    def borrow_reserve(self, instrument_id: str) -> int:
        """Tokens currently available to borrow for shorts."""
        ...


class NetworkClient(Protocol):
    """Builds, submits and confirms transactions for the bot's wallet."""

    def build_open_instruction(self, params: OpenInstructionParams) -> UnsubmittedTx:
        ...

    def build_close_instruction(self, params: CloseInstructionParams) -> UnsubmittedTx:
        ...

    def submit(self, tx: UnsubmittedTx) -> str:
        ...

    def await_confirmation(self, tx_ref: str) -> ConfirmationResult:
        ...

    def fetch_execution_log(self, tx_ref: str) -> list[str]:
        ...

    def balance(self) -> int:
        ...


class InstrumentResolver(Protocol):
    def resolve_instrument(self, name: str) -> str | None:
        ...


class EventSink(Protocol):
    """Receives one structured event per step phase."""

    def emit(self, event_type: str, **fields: Any) -> dict:
        ...
