"""
Config loader: YAML file -> frozen dataclass tree.

Gateway secrets resolved from environment variables (MBOT_GATEWAY_TOKEN,
optional MBOT_GATEWAY_URL override). Config file holds only non-secret values.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

SIMULATION_FALLBACKS = ("provisional", "fail")


@dataclass(frozen=True)
class GatewayConfig:
    url: str = "http://127.0.0.1:8080"
    timeout_s: float = 10.0
    confirm_timeout_s: float = 60.0
    token: str = ""


@dataclass(frozen=True)
class LedgerConfig:
    state_path: str = "data/ledger.db"


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/journal.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class PolicyConfig:
    """Order-parameter policy constants. Amounts in lamports / base units."""

    cap_multiple: int = 2
    margin_multiple: int = 5
    short_open_min_output: int = 10_000
    long_close_min_output: int = 1_000
    short_close_max_input: int | None = None  # None: bounded by the position's margin
    borrow_reserve_divisor: int = 5
    simulation_fallback: str = "provisional"  # "provisional" | "fail"

    def __post_init__(self) -> None:
        if self.simulation_fallback not in SIMULATION_FALLBACKS:
            raise ValueError(
                f"simulation_fallback must be one of {SIMULATION_FALLBACKS}, got {self.simulation_fallback!r}"
            )
        for name in ("cap_multiple", "margin_multiple", "borrow_reserve_divisor"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")


@dataclass(frozen=True)
class RunnerConfig:
    kill_switch: bool = False
    stop_on_error: bool = True
    max_failed_steps: int = 3


@dataclass(frozen=True)
class AppConfig:
    instrument: str
    gateway: GatewayConfig
    ledger: LedgerConfig
    journal: JournalConfig
    alerting: AlertingConfig = AlertingConfig()
    policy: PolicyConfig = PolicyConfig()
    runner: RunnerConfig = RunnerConfig()


def _opt_int(value: object) -> int | None:
    return None if value is None else int(value)


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Load configuration from a YAML file.

    The gateway token is resolved from the environment:
      - MBOT_GATEWAY_TOKEN
    MBOT_GATEWAY_URL, when set, overrides gateway.url.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    instrument = raw.get("instrument")
    if not instrument:
        raise ValueError("Config is missing 'instrument' (token name or mint to trade)")

    gw_raw = raw.get("gateway", {})
    gw_cfg = GatewayConfig(
        url=os.environ.get("MBOT_GATEWAY_URL") or str(gw_raw.get("url", "http://127.0.0.1:8080")),
        timeout_s=float(gw_raw.get("timeout_s", 10.0)),
        confirm_timeout_s=float(gw_raw.get("confirm_timeout_s", 60.0)),
        token=os.environ.get("MBOT_GATEWAY_TOKEN", ""),
    )

    l_raw = raw.get("ledger", {})
    l_cfg = LedgerConfig(state_path=l_raw.get("state_path", "data/ledger.db"))

    j_raw = raw.get("journal", {})
    j_cfg = JournalConfig(
        path=j_raw.get("path", "data/journal.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = raw.get("alerting", {})
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=str(a_raw.get("webhook_url", "")),
    )

    p_raw = raw.get("policy", {})
    p_cfg = PolicyConfig(
        cap_multiple=int(p_raw.get("cap_multiple", 2)),
        margin_multiple=int(p_raw.get("margin_multiple", 5)),
        short_open_min_output=int(p_raw.get("short_open_min_output", 10_000)),
        long_close_min_output=int(p_raw.get("long_close_min_output", 1_000)),
        short_close_max_input=_opt_int(p_raw.get("short_close_max_input")),
        borrow_reserve_divisor=int(p_raw.get("borrow_reserve_divisor", 5)),
        simulation_fallback=str(p_raw.get("simulation_fallback", "provisional")),
    )

    r_raw = raw.get("runner", {})
    r_cfg = RunnerConfig(
        kill_switch=bool(r_raw.get("kill_switch", False)),
        stop_on_error=bool(r_raw.get("stop_on_error", True)),
        max_failed_steps=int(r_raw.get("max_failed_steps", 3)),
    )

    return AppConfig(
        instrument=str(instrument),
        gateway=gw_cfg,
        ledger=l_cfg,
        journal=j_cfg,
        alerting=a_cfg,
        policy=p_cfg,
        runner=r_cfg,
    )
