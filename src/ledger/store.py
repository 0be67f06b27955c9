"""
Ledger store: durable snapshot of the position ledger (SQLite).

Single writer (one process). Positions are keyed by order_ref and
replaced wholesale on save; history rows are append-only. Integer
amounts exceed SQLite's 64-bit INTEGER so they are stored as TEXT.
"""

import json
import sqlite3
from pathlib import Path
from typing import Any


class LedgerStore:
    """SQLite-backed persistence for PositionLedger.snapshot()/restore()."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def path(self) -> Path:
        return self._path

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=10.0)

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS positions (
                    order_ref TEXT PRIMARY KEY,
                    instrument_id TEXT NOT NULL,
                    side TEXT NOT NULL,
                    size TEXT NOT NULL,
                    margin TEXT NOT NULL,
                    close_price TEXT NOT NULL,
                    opened_at TEXT NOT NULL,
                    leverage REAL,
                    stop_loss_percentage REAL,
                    partial_closes TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS history (
                    seq INTEGER PRIMARY KEY,
                    type TEXT NOT NULL,
                    description TEXT NOT NULL,
                    status TEXT NOT NULL,
                    tx_ref TEXT,
                    params TEXT NOT NULL,
                    result TEXT NOT NULL,
                    error TEXT,
                    duration_s REAL NOT NULL,
                    recorded_at TEXT NOT NULL
                )
                """
            )

    def save(self, snapshot: dict[str, Any]) -> None:
        """Persist a ledger snapshot in one transaction.

        Open positions are replaced; history rows beyond those already
        stored are appended.
        """
        positions = snapshot.get("positions", [])
        history = snapshot.get("history", [])
        with self._conn() as c:
            c.execute("DELETE FROM positions")
            c.executemany(
                """INSERT INTO positions (order_ref, instrument_id, side, size, margin, close_price,
                                          opened_at, leverage, stop_loss_percentage, partial_closes)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        p["order_ref"],
                        p["instrument_id"],
                        p["side"],
                        p["size"],
                        p["margin"],
                        p["close_price"],
                        p["opened_at"],
                        p.get("leverage"),
                        p.get("stop_loss_percentage"),
                        json.dumps(p.get("partial_closes", [])),
                    )
                    for p in positions
                ],
            )
            stored = c.execute("SELECT COUNT(*) FROM history").fetchone()[0]
            c.executemany(
                """INSERT INTO history (seq, type, description, status, tx_ref, params, result, error,
                                        duration_s, recorded_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        seq,
                        h["type"],
                        h.get("description", ""),
                        h["status"],
                        h.get("tx_ref"),
                        json.dumps(h.get("params", {})),
                        json.dumps(h.get("result", {})),
                        h.get("error"),
                        h.get("duration_s", 0.0),
                        h["recorded_at"],
                    )
                    for seq, h in enumerate(history)
                    if seq >= stored
                ],
            )

    def load(self) -> dict[str, Any]:
        """Read the stored snapshot; an empty store yields empty lists."""
        with self._conn() as c:
            position_rows = c.execute(
                """SELECT order_ref, instrument_id, side, size, margin, close_price, opened_at,
                          leverage, stop_loss_percentage, partial_closes
                   FROM positions ORDER BY opened_at"""
            ).fetchall()
            history_rows = c.execute(
                """SELECT type, description, status, tx_ref, params, result, error, duration_s, recorded_at
                   FROM history ORDER BY seq"""
            ).fetchall()
        return {
            "positions": [
                {
                    "order_ref": r[0],
                    "instrument_id": r[1],
                    "side": r[2],
                    "size": r[3],
                    "margin": r[4],
                    "close_price": r[5],
                    "opened_at": r[6],
                    "leverage": r[7],
                    "stop_loss_percentage": r[8],
                    "partial_closes": json.loads(r[9]),
                }
                for r in position_rows
            ],
            "history": [
                {
                    "type": r[0],
                    "description": r[1],
                    "status": r[2],
                    "tx_ref": r[3],
                    "params": json.loads(r[4]),
                    "result": json.loads(r[5]),
                    "error": r[6],
                    "duration_s": r[7],
                    "recorded_at": r[8],
                }
                for r in history_rows
            ],
        }
