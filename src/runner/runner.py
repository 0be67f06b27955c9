"""
Plan runner: execute plan steps one at a time against a BotContext.

Each step runs to completion (confirmed or failed) before the next one
starts. The ledger is flushed after every step. The guard is consulted
before each step and can halt the run; it never interrupts a step in
flight.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from config.plan_config import Plan
from orchestrator.contracts import CloseResult, OpenResult
from runner.context import BotContext
from runner.safety import RunGuard

logger = logging.getLogger("mbot.runner")


@dataclass
class StepOutcome:
    index: int
    kind: str
    description: str
    ok: bool
    result: OpenResult | CloseResult | None = None
    error: str = ""
    error_type: str = ""
    duration_s: float = 0.0


@dataclass
class RunReport:
    plan: str
    outcomes: list[StepOutcome] = field(default_factory=list)
    halted_reason: str = ""

    @property
    def completed(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.halted_reason


class PlanRunner:
    """Sequential executor for a loaded plan."""

    def __init__(self, context: BotContext, guard: RunGuard | None = None, *, timer: Any = time.monotonic) -> None:
        self._ctx = context
        self._guard = guard or RunGuard(
            kill_switch=context.config.runner.kill_switch,
            stop_on_error=context.config.runner.stop_on_error,
            max_failed_steps=context.config.runner.max_failed_steps,
        )
        self._timer = timer

    def run(self, plan: Plan) -> RunReport:
        ctx = self._ctx
        report = RunReport(plan=plan.name)
        ctx.events.run_start(plan.name, len(plan))
        ctx.journal.run_started(plan.name, ctx.config.instrument, len(plan))
        logger.info("Running plan %s: %d steps on %s", plan.name, len(plan), ctx.config.instrument)

        for index, step in enumerate(plan.steps):
            verdict = self._guard.check()
            if not verdict.allowed:
                report.halted_reason = verdict.reason
                logger.warning("Halting before step %d: %s", index, verdict.reason)
                ctx.events.error("run halted", detail=verdict.reason)
                break

            ctx.events.step_start(index, step.kind, step.description)
            started = self._timer()
            try:
                result = ctx.orchestrator.execute(step)
            except Exception as exc:
                duration = getattr(exc, "duration_s", None) or self._timer() - started
                self._guard.record_failure()
                report.outcomes.append(
                    StepOutcome(
                        index=index,
                        kind=step.kind,
                        description=step.description,
                        ok=False,
                        error=str(exc),
                        error_type=type(exc).__name__,
                        duration_s=duration,
                    )
                )
                logger.error("Step %d (%s) failed: %s", index, step.kind, exc)
            else:
                report.outcomes.append(
                    StepOutcome(
                        index=index,
                        kind=step.kind,
                        description=step.description,
                        ok=True,
                        result=result,
                        duration_s=result.duration_s,
                    )
                )
                ctx.events.step_complete(index, step.kind, result.duration_s, tx_ref=result.tx_ref)
            finally:
                ctx.flush()

        ctx.events.run_complete(report.completed, report.failed, report.halted_reason)
        ctx.journal.run_finished(plan.name, report.completed, report.failed, report.halted_reason)
        logger.info(
            "Plan %s finished: %d completed, %d failed%s",
            plan.name, report.completed, report.failed,
            f", halted: {report.halted_reason}" if report.halted_reason else "",
        )
        return report
