"""
Configuration loaders.

App config:  reads config.yaml, resolves env vars for secrets.
Plan:        reads a YAML/JSON plan, validates against JSON Schema.
"""

from config.loader import (
    AlertingConfig,
    AppConfig,
    GatewayConfig,
    JournalConfig,
    LedgerConfig,
    PolicyConfig,
    RunnerConfig,
    load_config,
)
from config.plan_config import (
    Plan,
    PlanConfigError,
    load_plan,
)

__all__ = [
    # App config (YAML)
    "AlertingConfig",
    "AppConfig",
    "GatewayConfig",
    "JournalConfig",
    "LedgerConfig",
    "PolicyConfig",
    "RunnerConfig",
    "load_config",
    # Plan (YAML/JSON + schema)
    "Plan",
    "PlanConfigError",
    "load_plan",
]
