"""
Position orchestrator: trade intent -> executable on-chain order -> ledger.

Open:  price -> quote -> (reserve cap) -> liquidity clamp -> target stop ->
       negotiated stop + anchors -> reserve fields -> balance pre-flight ->
       build -> submit -> confirm -> ledger.
Close: select from ledger -> size the close -> build -> submit -> confirm ->
       remove or shrink the position.

Every invocation appends exactly one TradeHistoryEntry to the ledger,
``completed`` or ``error``, before returning or raising. The ledger is
only mutated after a confirmed transaction. Nothing is retried.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable

from config.loader import PolicyConfig
from ledger.book import PositionLedger
from ledger.models import (
    HistoryStatus,
    OrderingKey,
    Position,
    Side,
    TradeHistoryEntry,
)
from orchestrator.contracts import (
    CloseInstructionParams,
    ClosePolicy,
    CloseResult,
    OpenInstructionParams,
    OpenIntent,
    OpenLong,
    OpenResult,
    OpenShort,
    PlanStep,
    StopLossNegotiationResult,
    UnsubmittedTx,
)
from orchestrator.errors import (
    CloseAmountTooSmall,
    ExecutionFailed,
    InstrumentNotReady,
    InsufficientBalance,
    NoMatchingPosition,
    QuoteUnavailable,
    StopLossNegotiationFailed,
)
from orchestrator.ports import EventSink, ExchangeAdapter, InstrumentResolver, NetworkClient
from orchestrator.pricing import (
    clamp_to_liquidity,
    close_amount,
    reserve_fields,
    stop_on_correct_side,
    target_stop_price,
)

logger = logging.getLogger("mbot.orchestrator")

_OPEN_KIND = {Side.LONG: "long", Side.SHORT: "short"}
_CLOSE_KIND = {Side.LONG: "close_long", Side.SHORT: "close_short"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _amount(value: int | None) -> str | None:
    return None if value is None else str(value)


def program_log_lines(lines: list[str]) -> list[str]:
    """Keep program output lines, dropping instruction banners and runtime noise."""
    return [
        line for line in lines
        if "Program log:" in line and "Program log: Instruction:" not in line
    ]


class PositionOrchestrator:
    """
    Opens and closes margin positions on one instrument.

    Holds no persistent state of its own: positions and history live in
    the ledger; prices, quotes and stop negotiation come from the adapter;
    transactions go through the network client.
    """

    def __init__(
        self,
        adapter: ExchangeAdapter,
        network: NetworkClient,
        resolver: InstrumentResolver,
        ledger: PositionLedger,
        *,
        instrument: str,
        policy: PolicyConfig = PolicyConfig(),
        events: EventSink | None = None,
        clock: Callable[[], datetime] = _utcnow,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._adapter = adapter
        self._network = network
        self._resolver = resolver
        self._ledger = ledger
        self._instrument = instrument
        self._instrument_id: str | None = None
        self._policy = policy
        self._events = events
        self._clock = clock
        self._timer = timer

    @property
    def ledger(self) -> PositionLedger:
        return self._ledger

    # ---------- public API ----------

    def execute(self, step: PlanStep) -> OpenResult | CloseResult:
        """Dispatch one plan step."""
        if isinstance(step, (OpenLong, OpenShort)):
            return self.open_position(step.side, step.intent(), description=step.description)
        return self.close_position(step.side, step.policy, description=step.description)

    def get_open_positions(self, side: Side) -> list[Position]:
        """Open positions of *side*, oldest first."""
        return self._ledger.query_positions(Side(side), OrderingKey.START_TIME_ASC)

    def open_position(self, side: Side, intent: OpenIntent, *, description: str = "") -> OpenResult:
        side = Side(side)
        kind = _OPEN_KIND[side]
        started = self._timer()
        params: dict[str, Any] = {
            "budget": str(intent.budget),
            "adverse_move_pct": intent.adverse_move_pct,
        }
        logger.info(
            "=== Open %s: budget=%d adverse_move=%.1f%% ===",
            side.value, intent.budget, intent.adverse_move_pct * 100,
        )
        try:
            position, result = self._open(side, intent, params)
        except Exception as exc:
            self._record_failure(kind, description, started, exc, params)
            raise

        duration = self._elapsed(started)
        self._ledger.append_history(
            TradeHistoryEntry(
                type=kind,
                description=description or (
                    f"{kind} {position.size} units, stop {intent.adverse_move_pct * 100:.1f}%"
                ),
                status=HistoryStatus.COMPLETED,
                duration_s=duration,
                recorded_at=self._clock(),
                tx_ref=result.tx_ref,
                params=params,
                result={
                    "order_ref": position.order_ref,
                    "spent": _amount(result.spent),
                    "leverage": position.leverage,
                    "stop_loss_percentage": position.stop_loss_percentage,
                    "warnings": list(result.warnings),
                },
            )
        )
        logger.info("Opened %s %s in %.2fs (tx %s)", side.value, position.order_ref, duration, result.tx_ref)
        return replace(result, duration_s=duration)

    def close_position(
        self,
        side: Side,
        policy: ClosePolicy | None = None,
        *,
        description: str = "",
    ) -> CloseResult:
        side = Side(side)
        policy = policy or ClosePolicy()
        kind = _CLOSE_KIND[side]
        started = self._timer()
        params: dict[str, Any] = {
            "ordering_key": policy.ordering_key.value,
            "close_fraction": policy.close_fraction,
        }
        logger.info(
            "=== Close %s: order=%s fraction=%.1f%% ===",
            side.value, policy.ordering_key.value, policy.close_fraction,
        )
        with self._ledger.side_lock(side):
            try:
                result = self._close(side, policy, params)
            except Exception as exc:
                self._record_failure(kind, description, started, exc, params)
                raise

            duration = self._elapsed(started)
            self._ledger.append_history(
                TradeHistoryEntry(
                    type=kind,
                    description=description or (
                        f"{kind} {result.realized_size} units ({policy.close_fraction:g}%)"
                    ),
                    status=HistoryStatus.COMPLETED,
                    duration_s=duration,
                    recorded_at=self._clock(),
                    tx_ref=result.tx_ref,
                    params=params,
                    result={
                        "order_ref": result.order_ref,
                        "proceeds": _amount(result.proceeds),
                        "remaining_size": str(result.remaining_size),
                        "partial": not result.fully_closed,
                    },
                )
            )
        logger.info(
            "Closed %d of %s %s in %.2fs (tx %s)",
            result.realized_size, side.value, result.order_ref, duration, result.tx_ref,
        )
        return replace(result, duration_s=duration)

    # ---------- open ----------

    def _open(self, side: Side, intent: OpenIntent, params: dict[str, Any]) -> tuple[Position, OpenResult]:
        instrument_id = self._resolve()
        params["instrument_id"] = instrument_id

        current_price = self._adapter.current_price(instrument_id)
        if not current_price or current_price <= 0:
            raise InstrumentNotReady(f"No current price for {self._instrument} ({instrument_id})")
        params["current_price"] = str(current_price)

        if side == Side.LONG:
            quote = self._adapter.quote_buy_for_budget(current_price, intent.budget)
        else:
            quote = self._adapter.quote_sell_for_budget(current_price, intent.budget)
        if quote is None or quote.size <= 0:
            raise QuoteUnavailable(f"Could not quote a {side.value} size for budget {intent.budget}")
        size = quote.size
        logger.info("Quoted size %d, expected price %d -> %d", size, current_price, quote.end_price)
        self._emit("quote", side=side.value, price=str(current_price), size=str(size), end_price=str(quote.end_price))

        if side == Side.SHORT:
            size = self._cap_to_borrow_reserve(instrument_id, size)
        size = self._clamp_to_liquidity(instrument_id, side, size)
        params["size"] = str(size)
        if size < 1:
            raise QuoteUnavailable(
                f"No {side.value} size left for budget {intent.budget} after reserve and liquidity limits"
            )

        target = target_stop_price(current_price, intent.adverse_move_pct, side)
        params["target_stop_price"] = str(target)
        negotiation = self._negotiate(instrument_id, side, size, current_price, target)
        close_price = negotiation.executable_price
        params["close_price"] = str(close_price)
        params["prev_anchor"] = negotiation.prev_anchor
        params["next_anchor"] = negotiation.next_anchor

        cap, margin = reserve_fields(intent.budget, self._policy.cap_multiple, self._policy.margin_multiple)
        max_spend = cap if side == Side.LONG else None
        min_output = self._policy.short_open_min_output if side == Side.SHORT else None
        params["margin"] = str(margin)
        if max_spend is not None:
            params["max_spend"] = str(max_spend)
        if min_output is not None:
            params["min_output"] = str(min_output)

        balance_before = self._network.balance()
        warnings = self._check_balance(balance_before, margin + (max_spend or 0))

        tx = self._network.build_open_instruction(
            OpenInstructionParams(
                instrument_id=instrument_id,
                side=side,
                size=size,
                margin=margin,
                close_price=close_price,
                prev_anchor=negotiation.prev_anchor,
                next_anchor=negotiation.next_anchor,
                max_spend=max_spend,
                min_output=min_output,
            )
        )
        if not tx.order_ref:
            raise ExecutionFailed("Open instruction did not report the order it creates")
        tx_ref = self._submit_and_confirm(tx)

        position = Position(
            order_ref=tx.order_ref,
            instrument_id=instrument_id,
            side=side,
            size=size,
            margin=margin,
            close_price=close_price,
            opened_at=self._clock(),
            leverage=negotiation.leverage,
            stop_loss_percentage=negotiation.stop_loss_percentage,
        )
        self._ledger.add_position(position)

        balance_after = self._balance_after(tx_ref)
        spent = None if balance_after is None else balance_before - balance_after
        if spent is not None:
            logger.info("Spent %d (balance %d before)", spent, balance_before)

        result = OpenResult(
            order_ref=tx.order_ref,
            side=side,
            size=size,
            margin=margin,
            close_price=close_price,
            leverage=negotiation.leverage,
            tx_ref=tx_ref,
            max_spend=max_spend,
            spent=spent,
            warnings=warnings,
        )
        return position, result

    def _cap_to_borrow_reserve(self, instrument_id: str, size: int) -> int:
        reserve = self._adapter.borrow_reserve(instrument_id)
        if size >= reserve:
            capped = reserve // self._policy.borrow_reserve_divisor
            logger.info("Borrow reserve %d limits short size %d -> %d", reserve, size, capped)
            return capped
        return size

    def _clamp_to_liquidity(self, instrument_id: str, side: Side, size: int) -> int:
        try:
            simulation = self._adapter.simulate_fill(instrument_id, size, side)
        except Exception as exc:
            if self._policy.simulation_fallback == "fail":
                raise
            logger.warning("Fill simulation failed, keeping quoted size %d: %s", size, exc)
            self._emit("simulate", side=side.value, size=str(size), fallback=True, error=str(exc))
            return size

        if simulation is None:
            return size
        clamped = clamp_to_liquidity(size, simulation.suggested_size)
        if clamped != size:
            logger.info("Liquidity adjustment: %d -> %d", size, clamped)
        logger.info(
            "Simulation: completion=%s%% slippage=%s%% suggested_budget=%s",
            simulation.completion_pct, simulation.slippage_pct, simulation.suggested_budget,
        )
        self._emit(
            "simulate",
            side=side.value,
            size=str(clamped),
            requested_size=str(size),
            completion_pct=simulation.completion_pct,
            slippage_pct=simulation.slippage_pct,
        )
        return clamped

    def _negotiate(
        self,
        instrument_id: str,
        side: Side,
        size: int,
        current_price: int,
        target: int,
    ) -> StopLossNegotiationResult:
        try:
            negotiation = self._adapter.negotiate_stop_loss(instrument_id, side, size, target)
        except Exception as exc:
            raise StopLossNegotiationFailed(f"{side.value} stop-loss negotiation failed: {exc}") from exc

        if negotiation is None or negotiation.executable_price is None:
            raise StopLossNegotiationFailed(f"{side.value} stop-loss negotiation returned no executable price")
        price = negotiation.executable_price
        if not stop_on_correct_side(side, current_price, price):
            relation = "below" if side == Side.LONG else "above"
            raise StopLossNegotiationFailed(
                f"Executable {side.value} stop {price} is not {relation} current price {current_price}"
            )
        logger.info(
            "Stop loss: target=%d executable=%d leverage=%s iterations=%d prev=%s next=%s",
            target, price, negotiation.leverage, negotiation.iteration_count,
            negotiation.prev_anchor, negotiation.next_anchor,
        )
        self._emit(
            "negotiate",
            side=side.value,
            target_price=str(target),
            executable_price=str(price),
            iterations=negotiation.iteration_count,
            leverage=negotiation.leverage,
        )
        return negotiation

    def _check_balance(self, available: int, required: int) -> tuple[str, ...]:
        if available >= required:
            return ()
        warning = InsufficientBalance(required=required, available=available)
        logger.warning("%s; proceeding, the instruction enforces the balance on chain", warning)
        self._emit("balance_warning", required=str(required), available=str(available))
        return (str(warning),)

    # ---------- close ----------

    def _close(self, side: Side, policy: ClosePolicy, params: dict[str, Any]) -> CloseResult:
        instrument_id = self._resolve()
        candidates = self._ledger.query_positions(side, policy.ordering_key, instrument_id=instrument_id)
        if not candidates:
            raise NoMatchingPosition(f"No open {side.value} position on {self._instrument}")
        target = candidates[0]
        params["order_ref"] = target.order_ref
        params["original_size"] = str(target.size)

        closed = close_amount(target.size, policy.close_fraction)
        if closed < 1:
            raise CloseAmountTooSmall(
                f"{policy.close_fraction:g}% of {target.size} units rounds to zero"
            )
        params["size"] = str(closed)
        logger.info(
            "Selected %s %s (opened %s): closing %d of %d",
            side.value, target.order_ref, target.opened_at.isoformat(), closed, target.size,
        )

        if side == Side.LONG:
            bounds = {"min_output": self._policy.long_close_min_output}
        else:
            bounds = {"max_input": self._policy.short_close_max_input or target.margin}
        params.update({k: str(v) for k, v in bounds.items()})

        balance_before = self._network.balance()
        tx = self._network.build_close_instruction(
            CloseInstructionParams(
                instrument_id=instrument_id,
                side=side,
                order_ref=target.order_ref,
                size=closed,
                **bounds,
            )
        )
        tx_ref = self._submit_and_confirm(tx)

        remaining = self._ledger.reduce_or_remove_position(
            target.order_ref,
            closed,
            close_fraction=policy.close_fraction,
            closed_at=self._clock(),
        )
        balance_after = self._balance_after(tx_ref)
        proceeds = None if balance_after is None else balance_after - balance_before
        return CloseResult(
            order_ref=target.order_ref,
            side=side,
            realized_size=closed,
            proceeds=proceeds,
            tx_ref=tx_ref,
            remaining_size=remaining.size if remaining else 0,
        )

    # ---------- shared ----------

    def _resolve(self) -> str:
        if self._instrument_id is None:
            instrument_id = self._resolver.resolve_instrument(self._instrument)
            if not instrument_id:
                raise InstrumentNotReady(f"Instrument {self._instrument!r} does not exist yet")
            self._instrument_id = instrument_id
        return self._instrument_id

    def _submit_and_confirm(self, tx: UnsubmittedTx) -> str:
        try:
            tx_ref = self._network.submit(tx)
        except Exception as exc:
            raise ExecutionFailed(f"Transaction submission failed: {exc}") from exc
        logger.info("Submitted %s, awaiting confirmation", tx_ref)
        self._emit("submit", tx_ref=tx_ref)

        try:
            confirmation = self._network.await_confirmation(tx_ref)
        except Exception as exc:
            raise ExecutionFailed(f"Confirmation of {tx_ref} failed: {exc}", tx_ref=tx_ref) from exc
        if not confirmation.ok:
            raise ExecutionFailed(f"Transaction {tx_ref} failed: {confirmation.error}", tx_ref=tx_ref)

        self._emit("confirm", tx_ref=tx_ref)
        self._log_execution(tx_ref)
        return tx_ref

    def _balance_after(self, tx_ref: str) -> int | None:
        # The transaction is already final; a failed read only loses the realized amount.
        try:
            return self._network.balance()
        except Exception as exc:
            logger.warning("Could not read balance after %s: %s", tx_ref, exc)
            return None

    def _log_execution(self, tx_ref: str) -> None:
        try:
            lines = self._network.fetch_execution_log(tx_ref)
        except Exception as exc:
            logger.warning("Could not fetch execution log for %s: %s", tx_ref, exc)
            return
        program_lines = program_log_lines(lines)
        if not program_lines:
            logger.info("No program log output for %s", tx_ref)
        for line in program_lines:
            logger.info("%s", line)

    def _record_failure(
        self,
        kind: str,
        description: str,
        started: float,
        exc: Exception,
        params: dict[str, Any],
    ) -> None:
        duration = self._elapsed(started)
        if hasattr(exc, "duration_s"):
            exc.duration_s = duration
        logger.error("%s failed after %.2fs: %s", kind, duration, exc)
        self._emit("step_failed", kind=kind, error=str(exc), error_type=type(exc).__name__, duration_s=duration)
        self._ledger.append_history(
            TradeHistoryEntry(
                type=kind,
                description=description or f"{kind} failed",
                status=HistoryStatus.ERROR,
                duration_s=duration,
                recorded_at=self._clock(),
                tx_ref=getattr(exc, "tx_ref", None),
                params=dict(params),
                error=str(exc),
            )
        )

    def _elapsed(self, started: float) -> float:
        return round(self._timer() - started, 3)

    def _emit(self, event_type: str, **fields: Any) -> None:
        if self._events is not None:
            self._events.emit(event_type, instrument=self._instrument, **fields)
