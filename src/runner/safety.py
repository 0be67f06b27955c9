"""
Run guard: kill switch and failed-step budget.

Checked before every plan step. A step already submitted is never
interrupted; the guard only decides whether the next one may start.

- kill_switch: no step runs at all.
- stop_on_error: the first failed step halts the run.
- max_failed_steps: otherwise the run halts once this many steps have failed.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class GuardResult:
    allowed: bool
    reason: str = ""


class RunGuard:
    """Between-step safety checks.

    Parameters
    ----------
    kill_switch:
        If True, every step is blocked unconditionally.
    stop_on_error:
        If True, any failed step blocks the rest of the run.
    max_failed_steps:
        Failure budget when ``stop_on_error`` is False.
    """

    def __init__(
        self,
        *,
        kill_switch: bool = False,
        stop_on_error: bool = True,
        max_failed_steps: int = 3,
    ) -> None:
        self._kill_switch = kill_switch
        self._stop_on_error = stop_on_error
        self._max_failed_steps = max_failed_steps
        self._failed_steps = 0

    @property
    def kill_switch(self) -> bool:
        return self._kill_switch

    @property
    def failed_steps(self) -> int:
        return self._failed_steps

    def record_failure(self) -> None:
        self._failed_steps += 1

    def check(self) -> GuardResult:
        """Check whether the next step may run.

        Returns GuardResult with allowed=True if it may, or allowed=False
        with a reason string.
        """
        if self._kill_switch:
            return GuardResult(allowed=False, reason="Kill switch is ON, no steps will run")

        if self._stop_on_error and self._failed_steps > 0:
            return GuardResult(allowed=False, reason="Previous step failed and stop_on_error is set")

        if self._failed_steps >= self._max_failed_steps:
            return GuardResult(
                allowed=False,
                reason=f"Failed-step limit reached: {self._failed_steps} "
                       f"(limit: {self._max_failed_steps})",
            )

        return GuardResult(allowed=True)
