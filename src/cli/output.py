"""
Human-readable terminal output for every CLI command.

The bot must explain itself at every step: what it quoted, what stop it
placed, what it closed. The journal receives the same data as JSON.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ledger.models import Position, TradeHistoryEntry

if TYPE_CHECKING:
    from orchestrator.contracts import CloseResult, OpenResult
    from runner.runner import RunReport

LAMPORTS_PER_SOL = 1_000_000_000


def _fmt_sol(lamports: int | None) -> str:
    if lamports is None:
        return "unknown"
    return f"{lamports / LAMPORTS_PER_SOL:,.4f} SOL"


def _fmt_amount(amount: int) -> str:
    if amount >= 1_000_000_000:
        return f"{amount / 1_000_000_000:.2f}B"
    if amount >= 1_000_000:
        return f"{amount / 1_000_000:.2f}M"
    if amount >= 1_000:
        return f"{amount / 1_000:.0f}K"
    return str(amount)


def format_open_result(result: OpenResult) -> str:
    """Format a confirmed open."""
    lines = [
        f"=== Opened {result.side.value} ===",
        f"Order        : {result.order_ref}",
        f"Size         : {_fmt_amount(result.size)} ({result.size})",
        f"Stop price   : {result.close_price}",
        f"Margin       : {_fmt_sol(result.margin)}",
    ]
    if result.max_spend is not None:
        lines.append(f"Spend cap    : {_fmt_sol(result.max_spend)}")
    lines.append(f"Spent        : {_fmt_sol(result.spent)}")
    if result.leverage is not None:
        lines.append(f"Leverage     : {result.leverage:.2f}x")
    lines.append(f"Tx           : {result.tx_ref}  ({result.duration_s:.2f}s)")
    for warning in result.warnings:
        lines.append(f"Warning      : {warning}")
    lines.append("===")
    return "\n".join(lines)


def format_close_result(result: CloseResult) -> str:
    """Format a confirmed close, full or partial."""
    lines = [
        f"=== Closed {result.side.value} ===",
        f"Order        : {result.order_ref}",
        f"Closed size  : {_fmt_amount(result.realized_size)} ({result.realized_size})",
        f"Proceeds     : {_fmt_sol(result.proceeds)}",
    ]
    if result.fully_closed:
        lines.append("Remaining    : none (position removed)")
    else:
        lines.append(f"Remaining    : {_fmt_amount(result.remaining_size)} ({result.remaining_size})")
    lines.append(f"Tx           : {result.tx_ref}  ({result.duration_s:.2f}s)")
    lines.append("===")
    return "\n".join(lines)


def format_positions(instrument: str, positions: list[Position]) -> str:
    """Format open positions, oldest first."""
    lines = [f"=== Open positions: {instrument} ==="]
    if not positions:
        lines.append("  flat (no open positions)")
    for p in positions:
        lev = f"{p.leverage:.2f}x" if p.leverage is not None else "n/a"
        lines.append(
            f"  {p.side.value:5s} {p.order_ref}  size {_fmt_amount(p.size)}  "
            f"stop {p.close_price}  margin {_fmt_sol(p.margin)}  lev {lev}"
        )
        lines.append(f"        opened {p.opened_at.isoformat()}")
        for pc in p.partial_closes:
            lines.append(
                f"        partial close {pc.close_fraction:g}% ({pc.closed_size}) @ {pc.closed_at.isoformat()}"
            )
    lines.append("===")
    return "\n".join(lines)


def format_history(entries: list[TradeHistoryEntry]) -> str:
    """Format trade history, oldest first."""
    if not entries:
        return "No trade history yet."
    lines = [f"=== Trade history ({len(entries)}) ==="]
    for e in entries:
        mark = "OK  " if e.status.value == "completed" else "FAIL"
        lines.append(f"  [{mark}] {e.recorded_at.isoformat()}  {e.type:11s} {e.description}  ({e.duration_s:.2f}s)")
        if e.tx_ref:
            lines.append(f"         tx {e.tx_ref}")
        if e.error:
            lines.append(f"         error: {e.error}")
    lines.append("===")
    return "\n".join(lines)


def format_run_report(report: RunReport) -> str:
    """Format the outcome of a plan run."""
    lines = [
        f"=== Plan: {report.plan} ===",
        f"Steps        : {len(report.outcomes)} run, {report.completed} completed, {report.failed} failed",
    ]
    for o in report.outcomes:
        mark = "OK  " if o.ok else "FAIL"
        label = o.description or o.kind
        lines.append(f"  [{mark}] #{o.index} {o.kind:11s} {label}  ({o.duration_s:.2f}s)")
        if o.ok and o.result is not None:
            lines.append(f"         tx {o.result.tx_ref}  order {o.result.order_ref}")
        elif not o.ok:
            lines.append(f"         {o.error_type}: {o.error}")
    if report.halted_reason:
        lines.append(f"Halted       : {report.halted_reason}")
    lines.append("===")
    return "\n".join(lines)
