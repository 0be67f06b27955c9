"""
Ledger data model: Position, PartialClose, TradeHistoryEntry.

Sizes, margins and prices are plain Python ints (arbitrary precision);
they are persisted as decimal strings. Floats appear only in display
metrics (leverage, stop-loss percentage).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Side(str, Enum):
    """Direction of a margin position."""

    LONG = "LONG"
    SHORT = "SHORT"


class OrderingKey(str, Enum):
    """Selection order for open positions."""

    START_TIME_ASC = "start_time_asc"
    START_TIME_DESC = "start_time_desc"


class HistoryStatus(str, Enum):
    COMPLETED = "completed"
    ERROR = "error"


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class PartialClose:
    """One confirmed partial close applied to a position."""

    closed_at: datetime
    closed_size: int
    close_fraction: float

    def to_record(self) -> dict[str, Any]:
        return {
            "closed_at": self.closed_at.isoformat(),
            "closed_size": str(self.closed_size),
            "close_fraction": self.close_fraction,
        }

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> PartialClose:
        return cls(
            closed_at=_ts(raw["closed_at"]),
            closed_size=int(raw["closed_size"]),
            close_fraction=float(raw["close_fraction"]),
        )


@dataclass(frozen=True)
class Position:
    """One open leveraged order, as confirmed on chain.

    ``size`` is the token amount for LONG and the borrowed-and-sold amount
    for SHORT. ``close_price`` is the stop price at which the order
    self-liquidates.
    """

    order_ref: str
    instrument_id: str
    side: Side
    size: int
    margin: int
    close_price: int
    opened_at: datetime
    leverage: float | None = None
    stop_loss_percentage: float | None = None
    partial_closes: tuple[PartialClose, ...] = ()

    def to_record(self) -> dict[str, Any]:
        return {
            "order_ref": self.order_ref,
            "instrument_id": self.instrument_id,
            "side": self.side.value,
            "size": str(self.size),
            "margin": str(self.margin),
            "close_price": str(self.close_price),
            "opened_at": self.opened_at.isoformat(),
            "leverage": self.leverage,
            "stop_loss_percentage": self.stop_loss_percentage,
            "partial_closes": [p.to_record() for p in self.partial_closes],
        }

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> Position:
        return cls(
            order_ref=raw["order_ref"],
            instrument_id=raw["instrument_id"],
            side=Side(raw["side"]),
            size=int(raw["size"]),
            margin=int(raw["margin"]),
            close_price=int(raw["close_price"]),
            opened_at=_ts(raw["opened_at"]),
            leverage=raw.get("leverage"),
            stop_loss_percentage=raw.get("stop_loss_percentage"),
            partial_closes=tuple(PartialClose.from_record(p) for p in raw.get("partial_closes", [])),
        )


@dataclass(frozen=True)
class TradeHistoryEntry:
    """Append-only record of one orchestrator invocation, success or failure."""

    type: str  # "long" | "short" | "close_long" | "close_short"
    description: str
    status: HistoryStatus
    duration_s: float
    recorded_at: datetime
    tx_ref: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "status": self.status.value,
            "duration_s": self.duration_s,
            "recorded_at": self.recorded_at.isoformat(),
            "tx_ref": self.tx_ref,
            "params": dict(self.params),
            "result": dict(self.result),
            "error": self.error,
        }

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> TradeHistoryEntry:
        return cls(
            type=raw["type"],
            description=raw.get("description", ""),
            status=HistoryStatus(raw["status"]),
            duration_s=float(raw.get("duration_s", 0.0)),
            recorded_at=_ts(raw["recorded_at"]),
            tx_ref=raw.get("tx_ref"),
            params=dict(raw.get("params") or {}),
            result=dict(raw.get("result") or {}),
            error=raw.get("error"),
        )
