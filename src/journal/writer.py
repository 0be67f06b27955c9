"""
Trade journal: append-only JSON lines. One line per trade-history entry plus run boundaries.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from ledger.models import TradeHistoryEntry


def _serialize(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "__dict__") and not isinstance(obj, type):
        return {k: _serialize(v) for k, v in vars(obj).items() if not k.startswith("_")}
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


class JournalWriter:
    """Append-only journal. Each line is a JSON object with event type and payload."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record)) + "\n"
        with open(self._path, "a") as f:
            f.write(line)
        if self._echo:
            print(line.rstrip())

    def history(self, entry: TradeHistoryEntry) -> None:
        self._write("trade_history", entry.to_record())

    def run_started(self, plan: str, instrument: str, steps: int, **extra: Any) -> None:
        self._write("run_started", {"plan": plan, "instrument": instrument, "steps": steps, **extra})

    def run_finished(self, plan: str, completed: int, failed: int, halted_reason: str = "", **extra: Any) -> None:
        self._write(
            "run_finished",
            {"plan": plan, "completed": completed, "failed": failed, "halted_reason": halted_reason, **extra},
        )
