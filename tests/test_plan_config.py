"""Tests for plan loader: YAML/JSON parsing, schema validation, defaults merge, step building."""

import json
from pathlib import Path

import pytest

from config.plan_config import (
    DEFAULT_SCHEMA_PATH,
    PlanConfigError,
    _deep_merge,
    load_plan,
)
from ledger import OrderingKey
from orchestrator.contracts import CloseLong, CloseShort, OpenLong, OpenShort

DEMO_PLAN = Path(__file__).resolve().parent.parent / "plans" / "demo.yaml"


def _write(tmp_path: Path, data: dict, name: str = "plan.json") -> Path:
    p = tmp_path / name
    p.write_text(json.dumps(data))
    return p


class TestDemoPlan:
    def test_schema_file_exists(self) -> None:
        assert DEFAULT_SCHEMA_PATH.exists()

    def test_loads(self) -> None:
        plan = load_plan(DEMO_PLAN)
        assert plan.name == "demo"
        assert [type(s) for s in plan.steps] == [OpenLong, OpenShort, CloseLong, CloseShort]

    def test_defaults_applied(self) -> None:
        plan = load_plan(DEMO_PLAN)
        assert plan.steps[0].budget == 1_000_000_000
        assert plan.steps[0].adverse_move_pct == 0.10
        assert plan.steps[1].adverse_move_pct == 0.15

    def test_close_params(self) -> None:
        plan = load_plan(DEMO_PLAN)
        assert plan.steps[2].policy.ordering_key == OrderingKey.START_TIME_DESC
        assert plan.steps[2].policy.close_fraction == 50
        assert plan.steps[3].policy.ordering_key == OrderingKey.START_TIME_ASC
        assert plan.steps[3].policy.close_fraction == 100

    def test_disabled_step_skipped(self) -> None:
        assert len(load_plan(DEMO_PLAN)) == 4


class TestJsonPlans:
    def test_minimal(self, tmp_path: Path) -> None:
        plan = load_plan(_write(tmp_path, {"steps": [{"type": "open_long"}, {"type": "close_long"}]}))
        assert plan.name == "plan"
        assert plan.steps[0] == OpenLong()
        assert plan.steps[1] == CloseLong()

    def test_string_budget_beyond_float_precision(self, tmp_path: Path) -> None:
        budget = "123456789012345678901234567890"
        plan = load_plan(_write(tmp_path, {"steps": [{"type": "open_short", "params": {"budget": budget}}]}))
        assert plan.steps[0].budget == int(budget)

    def test_step_params_override_defaults(self, tmp_path: Path) -> None:
        data = {
            "defaults": {"open_long": {"budget": 5, "adverse_move_pct": 0.2}},
            "steps": [{"type": "open_long", "params": {"adverse_move_pct": 0.3}, "description": "x"}],
        }
        step = load_plan(_write(tmp_path, data)).steps[0]
        assert (step.budget, step.adverse_move_pct, step.description) == (5, 0.3, "x")


class TestValidation:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(PlanConfigError, match="not found"):
            load_plan(tmp_path / "nope.yaml")

    def test_invalid_json(self, tmp_path: Path) -> None:
        p = tmp_path / "bad.json"
        p.write_text("{not json")
        with pytest.raises(PlanConfigError, match="not valid JSON"):
            load_plan(p)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        p = tmp_path / "bad.yaml"
        p.write_text("steps: [\n")
        with pytest.raises(PlanConfigError, match="not valid YAML"):
            load_plan(p)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        p = tmp_path / "list.yaml"
        p.write_text("- type: open_long\n")
        with pytest.raises(PlanConfigError, match="mapping"):
            load_plan(p)

    def test_unknown_step_type(self, tmp_path: Path) -> None:
        with pytest.raises(PlanConfigError, match="validation failed"):
            load_plan(_write(tmp_path, {"steps": [{"type": "hedge"}]}))

    def test_close_fraction_out_of_range(self, tmp_path: Path) -> None:
        data = {"steps": [{"type": "close_short", "params": {"close_fraction": 150}}]}
        with pytest.raises(PlanConfigError, match="validation failed"):
            load_plan(_write(tmp_path, data))

    def test_open_params_on_close_step(self, tmp_path: Path) -> None:
        data = {"steps": [{"type": "close_long", "params": {"budget": 10}}]}
        with pytest.raises(PlanConfigError):
            load_plan(_write(tmp_path, data))

    def test_adverse_pct_out_of_range(self, tmp_path: Path) -> None:
        data = {"steps": [{"type": "open_long", "params": {"adverse_move_pct": 1.5}}]}
        with pytest.raises(PlanConfigError):
            load_plan(_write(tmp_path, data))

    def test_missing_schema(self, tmp_path: Path) -> None:
        with pytest.raises(PlanConfigError, match="Schema file not found"):
            load_plan(_write(tmp_path, {"steps": []}), schema_path=tmp_path / "missing.json")


class TestDeepMerge:
    def test_nested(self) -> None:
        base = {"a": {"x": 1, "y": 2}, "b": 3}
        assert _deep_merge(base, {"a": {"y": 9}}) == {"a": {"x": 1, "y": 9}, "b": 3}
        assert base == {"a": {"x": 1, "y": 2}, "b": 3}
