"""
Orchestrator failure taxonomy.

Every error is fatal for the step that raised it; none is retried. The
orchestrator records the failure in the trade history and sets
``duration_s`` before re-raising. InsufficientBalance is a warning, never
raised: the on-chain instruction is the authoritative balance check.
"""


class OrchestratorError(Exception):
    """Base class for step failures."""

    duration_s: float | None = None


class InstrumentNotReady(OrchestratorError):
    """The instrument cannot be resolved or has no price yet. Retry later."""


class QuoteUnavailable(OrchestratorError):
    """The adapter could not quote a size for the requested budget."""


class StopLossNegotiationFailed(OrchestratorError):
    """No executable stop price, or one on the wrong side of the current price."""


class NoMatchingPosition(OrchestratorError):
    """No open position of the requested side to close."""


class CloseAmountTooSmall(OrchestratorError):
    """The close fraction rounds down to zero units."""


class ExecutionFailed(OrchestratorError):
    """Transaction rejected, confirmed with an error, or the client timed out."""

    def __init__(self, message: str, *, tx_ref: str | None = None) -> None:
        super().__init__(message)
        self.tx_ref = tx_ref


class InsufficientBalance(UserWarning):
    """Available collateral is below spend cap + margin."""

    def __init__(self, required: int, available: int) -> None:
        super().__init__(f"Balance {available} is below required {required}")
        self.required = required
        self.available = available
