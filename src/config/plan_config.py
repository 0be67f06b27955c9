"""
Plan loader: YAML or JSON plan file -> validated list of step variants.

A plan is a named list of steps. Each step has a ``type`` (open_long,
open_short, close_long, close_short), an optional ``enabled`` flag and
``description``, and ``params``. Per-type ``defaults`` are deep-merged
under each step's params before the step is built. The raw document is
validated against ``docs/config/plan.schema.json``.

Usage::

    from config.plan_config import load_plan
    plan = load_plan("plans/demo.yaml")
    for step in plan.steps:
        orchestrator.execute(step)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from ledger.models import OrderingKey
from orchestrator.contracts import (
    DEFAULT_BUDGET,
    DEFAULT_LONG_ADVERSE_PCT,
    DEFAULT_SHORT_ADVERSE_PCT,
    CloseLong,
    ClosePolicy,
    CloseShort,
    OpenLong,
    OpenShort,
    PlanStep,
)

logger = logging.getLogger("mbot.config")


def _find_project_root() -> Path:
    """Walk up from this file looking for pyproject.toml.

    When running from source, finds the repo root. When installed as a
    package, pyproject.toml won't exist, so fall back to CWD.
    """
    candidate = Path(__file__).resolve().parent
    for _ in range(10):
        if (candidate / "pyproject.toml").exists():
            return candidate
        parent = candidate.parent
        if parent == candidate:
            break
        candidate = parent
    return Path.cwd()


_PROJECT_ROOT = _find_project_root()

DEFAULT_SCHEMA_PATH = _PROJECT_ROOT / "docs" / "config" / "plan.schema.json"

STEP_TYPES = ("open_long", "open_short", "close_long", "close_short")


@dataclass(frozen=True)
class Plan:
    name: str
    steps: tuple[PlanStep, ...]

    def __len__(self) -> int:
        return len(self.steps)


# ---------------------------------------------------------------------------
# Deep merge for per-type defaults
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overrides* into a copy of *base*.

    - Dict values are merged recursively (override keys win).
    - Non-dict values in overrides replace the base value.
    - Keys in base that are absent from overrides are preserved.
    """
    merged = dict(base)
    for key, val in overrides.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(val, dict):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class PlanConfigError(Exception):
    """Raised when plan loading or validation fails."""


def _validate_schema(data: dict[str, Any], schema_path: Path) -> None:
    """Validate *data* against the JSON Schema at *schema_path*."""
    if not schema_path.exists():
        raise PlanConfigError(f"Schema file not found: {schema_path}")
    with open(schema_path) as f:
        schema = json.load(f)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        where = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise PlanConfigError(f"Plan validation failed at {where}: {exc.message}") from exc


def _read(path: Path) -> Any:
    text = path.read_text()
    if path.suffix.lower() == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise PlanConfigError(f"Plan is not valid JSON: {exc}") from exc
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise PlanConfigError(f"Plan is not valid YAML: {exc}") from exc


def _build_step(step_type: str, params: dict[str, Any], description: str) -> PlanStep:
    """Convert one validated step into its variant. Budgets may be decimal strings."""
    try:
        if step_type == "open_long":
            return OpenLong(
                budget=int(params.get("budget", DEFAULT_BUDGET)),
                adverse_move_pct=float(params.get("adverse_move_pct", DEFAULT_LONG_ADVERSE_PCT)),
                description=description,
            )
        if step_type == "open_short":
            return OpenShort(
                budget=int(params.get("budget", DEFAULT_BUDGET)),
                adverse_move_pct=float(params.get("adverse_move_pct", DEFAULT_SHORT_ADVERSE_PCT)),
                description=description,
            )
        policy = ClosePolicy(
            ordering_key=OrderingKey(params.get("order_by", OrderingKey.START_TIME_DESC.value)),
            close_fraction=float(params.get("close_fraction", 100)),
        )
    except (TypeError, ValueError) as exc:
        raise PlanConfigError(f"Invalid {step_type} step: {exc}") from exc
    if step_type == "close_long":
        return CloseLong(policy=policy, description=description)
    return CloseShort(policy=policy, description=description)


def load_plan(
    path: str | Path,
    schema_path: str | Path | None = None,
) -> Plan:
    """Load and validate a plan file.

    Parameters
    ----------
    path:
        Path to a YAML (``.yaml``/``.yml``) or JSON (``.json``) plan.
    schema_path:
        Path to the JSON Schema file. Defaults to ``docs/config/plan.schema.json``.

    Returns
    -------
    Plan
        The plan name and its enabled steps, in file order.

    Raises
    ------
    PlanConfigError
        If the file is missing, unparseable, fails schema validation, or
        a step's parameters are out of range.
    """
    plan_path = Path(path)
    sch_path = Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH

    if not plan_path.exists():
        raise PlanConfigError(f"Plan file not found: {plan_path}")

    data = _read(plan_path)
    if not isinstance(data, dict):
        raise PlanConfigError(f"Plan must be a mapping, got {type(data).__name__}")

    _validate_schema(data, sch_path)

    defaults = data.get("defaults", {})
    steps: list[PlanStep] = []
    for index, raw in enumerate(data["steps"]):
        if not raw.get("enabled", True):
            logger.info("Skipping disabled step %d (%s)", index, raw["type"])
            continue
        params = _deep_merge(defaults.get(raw["type"], {}), raw.get("params", {}))
        steps.append(_build_step(raw["type"], params, raw.get("description", "")))

    name = data.get("name") or plan_path.stem
    logger.info("Loaded plan %s: %d of %d steps enabled", name, len(steps), len(data["steps"]))
    return Plan(name=name, steps=tuple(steps))
