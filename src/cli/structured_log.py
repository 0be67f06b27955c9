"""
Structured JSON event logger for the bot.

Emits one JSON object per line to stderr: one per plan step phase
(quote, simulate, negotiate, submit, confirm) plus run and step
boundaries. Events are designed to be parsed by log aggregators
(Grafana Loki, CloudWatch, ELK).

Optional webhook: when configured, alert events (confirm, step_failed,
balance_warning, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("mbot.events")

ALERT_EVENTS = frozenset({"confirm", "step_failed", "balance_warning", "error"})


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        instrument: str,
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._instrument = instrument
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr

    def emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "instrument": self._instrument,
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record, default=str) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        try:
            data = json.dumps(record, default=str).encode("utf-8")
            req = urllib.request.Request(
                self._webhook_url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            urllib.request.urlopen(req, timeout=5)
        except Exception as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def run_start(self, plan: str, steps: int) -> dict:
        return self.emit("run_start", plan=plan, steps=steps)

    def step_start(self, index: int, kind: str, description: str = "") -> dict:
        return self.emit("step_start", index=index, kind=kind, description=description)

    def step_complete(self, index: int, kind: str, duration_s: float, tx_ref: str | None = None) -> dict:
        return self.emit(
            "step_complete",
            index=index,
            kind=kind,
            duration_s=round(duration_s, 3),
            tx_ref=tx_ref,
        )

    def run_complete(self, completed: int, failed: int, halted_reason: str = "") -> dict:
        return self.emit(
            "run_complete",
            completed=completed,
            failed=failed,
            halted_reason=halted_reason,
        )

    def error(self, message: str, detail: str = "") -> dict:
        return self.emit("error", message=message, detail=detail)
