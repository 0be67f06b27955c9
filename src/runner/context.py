"""
BotContext: everything one run needs, built once and torn down at the end.

Owns the ledger (restored from the store at start, flushed after every
step), the journal, the event sink and the orchestrator wired to the
exchange ports.
"""

from __future__ import annotations

import logging

from cli.structured_log import StructuredEventLogger
from config.loader import AppConfig
from journal import JournalWriter
from ledger import LedgerStore, PositionLedger
from orchestrator.core import PositionOrchestrator
from orchestrator.ports import ExchangeAdapter, InstrumentResolver, NetworkClient

logger = logging.getLogger("mbot.runner")


class BotContext:
    """Run-scoped wiring of ports, ledger, journal and events."""

    def __init__(
        self,
        config: AppConfig,
        *,
        adapter: ExchangeAdapter,
        network: NetworkClient,
        resolver: InstrumentResolver,
        store: LedgerStore,
        journal: JournalWriter,
        events: StructuredEventLogger,
        on_close=None,
    ) -> None:
        self.config = config
        self.adapter = adapter
        self.network = network
        self.resolver = resolver
        self.store = store
        self.journal = journal
        self.events = events
        self._on_close = on_close

        self.ledger = PositionLedger()
        self.ledger.restore(store.load())
        self._journaled = len(self.ledger.history())

        self.orchestrator = PositionOrchestrator(
            adapter,
            network,
            resolver,
            self.ledger,
            instrument=config.instrument,
            policy=config.policy,
            events=events,
        )

    @classmethod
    def from_config(cls, config: AppConfig) -> "BotContext":
        """Build a context talking to the configured bridge."""
        from gateway import BridgeClient

        bridge = BridgeClient(
            config.gateway.url,
            token=config.gateway.token,
            timeout=config.gateway.timeout_s,
            confirm_timeout=config.gateway.confirm_timeout_s,
        )
        return cls(
            config,
            adapter=bridge,
            network=bridge,
            resolver=bridge,
            store=LedgerStore(config.ledger.state_path),
            journal=JournalWriter(config.journal.path, echo_stdout=config.journal.echo_stdout),
            events=StructuredEventLogger(
                config.instrument,
                enabled=config.alerting.structured_logs,
                webhook_url=config.alerting.webhook_url,
            ),
            on_close=bridge.close,
        )

    def flush(self) -> None:
        """Persist the ledger and journal history entries not yet written."""
        self.store.save(self.ledger.snapshot())
        entries = self.ledger.history()
        for entry in entries[self._journaled:]:
            self.journal.history(entry)
        self._journaled = len(entries)

    def close(self) -> None:
        self.flush()
        if self._on_close is not None:
            self._on_close()
        logger.info("Context closed: %d open positions", len(self.ledger))

    def __enter__(self) -> "BotContext":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
