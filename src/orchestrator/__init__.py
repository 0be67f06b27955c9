"""
Position orchestrator: open and close leveraged positions on a bonding-curve market.

Contracts:  intents, plan steps, adapter values and results (contracts.py)
Ports:      exchange adapter, network client, instrument resolver (ports.py)
Pricing:    exact integer stop, clamp and close-size rules (pricing.py)
Core:       PositionOrchestrator (core.py)
"""

from orchestrator.contracts import (
    CloseLong,
    ClosePolicy,
    CloseResult,
    CloseShort,
    OpenIntent,
    OpenLong,
    OpenResult,
    OpenShort,
    PlanStep,
)
from orchestrator.core import PositionOrchestrator, program_log_lines
from orchestrator.errors import (
    CloseAmountTooSmall,
    ExecutionFailed,
    InstrumentNotReady,
    InsufficientBalance,
    NoMatchingPosition,
    OrchestratorError,
    QuoteUnavailable,
    StopLossNegotiationFailed,
)

__all__ = [
    "CloseAmountTooSmall",
    "CloseLong",
    "ClosePolicy",
    "CloseResult",
    "CloseShort",
    "ExecutionFailed",
    "InstrumentNotReady",
    "InsufficientBalance",
    "NoMatchingPosition",
    "OpenIntent",
    "OpenLong",
    "OpenResult",
    "OpenShort",
    "OrchestratorError",
    "PlanStep",
    "PositionOrchestrator",
    "QuoteUnavailable",
    "StopLossNegotiationFailed",
    "program_log_lines",
]
