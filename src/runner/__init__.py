"""Plan execution: run-scoped context, between-step guard, sequential runner."""

from runner.context import BotContext
from runner.runner import PlanRunner, RunReport, StepOutcome
from runner.safety import GuardResult, RunGuard

__all__ = ["BotContext", "GuardResult", "PlanRunner", "RunGuard", "RunReport", "StepOutcome"]
