"""
SQLite storage for toolloop runs.

This module records loop runs for later inspection: the run itself, every
capability invocation (TurnRecord), and every change to the active set.

Design Principles:
    - Append-only: turns and changes are never modified once written
    - Self-contained: a single .db file holds everything
    - Safe to share across threads (check_same_thread=False)

Tables:
    - runs: Metadata and outcome of each run
    - turns: One row per capability invocation
    - capability_changes: One row per capability added or removed
"""

import json
import sqlite3
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from toolloop.capabilities.base import Capability
from toolloop.errors import StorageConnectionError, StorageReadError, StorageWriteError
from toolloop.schema import (
    CapabilityChange,
    ChangeKind,
    LoopConfig,
    LoopMode,
    LoopStatus,
    RunRecord,
    TurnRecord,
    TurnStatus,
)

SCHEMA_VERSION = 1

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS runs (
    run_id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    completed_at TEXT,
    status TEXT NOT NULL DEFAULT 'running',
    mode TEXT NOT NULL DEFAULT 'sequential',
    max_iterations INTEGER NOT NULL DEFAULT 0,
    config_json TEXT NOT NULL,
    iterations INTEGER NOT NULL DEFAULT 0,
    turn_count INTEGER NOT NULL DEFAULT 0,
    error_count INTEGER NOT NULL DEFAULT 0,
    final_text TEXT,
    error TEXT
);

CREATE TABLE IF NOT EXISTS turns (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL,
    iteration INTEGER NOT NULL,
    call_id TEXT NOT NULL,
    capability_name TEXT NOT NULL,
    raw_input TEXT NOT NULL,
    raw_output TEXT NOT NULL,
    decoded_json TEXT,
    status TEXT NOT NULL,
    duration_seconds REAL NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    FOREIGN KEY (run_id) REFERENCES runs(run_id)
);

CREATE TABLE IF NOT EXISTS capability_changes (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL,
    iteration INTEGER NOT NULL,
    capability_name TEXT NOT NULL,
    kind TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (run_id) REFERENCES runs(run_id)
);

CREATE INDEX IF NOT EXISTS idx_turns_run_id ON turns(run_id);
CREATE INDEX IF NOT EXISTS idx_changes_run_id ON capability_changes(run_id);
CREATE INDEX IF NOT EXISTS idx_runs_created_at ON runs(created_at);
"""


def generate_id() -> str:
    """Generate a short unique ID for runs."""
    return str(uuid.uuid4())[:8]


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


class LoopStore:
    """
    SQLite database for loop runs.

    Usage:
        store = LoopStore("toolloop.db")
        engine = LoopEngine(sender, store=store)
        result = engine.execute(transcript, capabilities)
        turns = store.get_turns(result.run_id)
        store.close()

    Or use as context manager:
        with LoopStore("toolloop.db") as store:
            ...
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file (":memory:" for tests).
                     Will be created if it doesn't exist.
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else db_path
        self._conn: sqlite3.Connection | None = None
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        try:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Cannot open run database at {self.db_path}: {e}",
            ) from e

    def _init_schema(self) -> None:
        try:
            self._conn.executescript(CREATE_TABLES_SQL).close()
            row = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            ).fetchone()
            if row is None:
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now_iso()),
                )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(operation="init_schema", underlying_error=str(e)) from e

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "LoopStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Run Operations
    # =========================================================================

    def create_run(self, config: LoopConfig) -> str:
        """
        Create a new run record.

        Returns:
            The generated run_id
        """
        run_id = generate_id()
        try:
            self._conn.execute(
                """
                INSERT INTO runs (
                    run_id, created_at, status, mode, max_iterations, config_json
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    run_id,
                    now_iso(),
                    LoopStatus.RUNNING.value,
                    config.mode.value,
                    config.max_iterations,
                    config.model_dump_json(),
                ),
            )
            self._conn.commit()
            return run_id
        except sqlite3.Error as e:
            raise StorageWriteError(operation="create_run", underlying_error=str(e)) from e

    def finish_run(
        self,
        run_id: str,
        status: LoopStatus,
        iterations: int,
        turn_count: int,
        error_count: int,
        final_text: str | None = None,
        error: str | None = None,
    ) -> None:
        """Record the outcome of a run."""
        try:
            self._conn.execute(
                """
                UPDATE runs SET
                    status = ?, completed_at = ?, iterations = ?, turn_count = ?,
                    error_count = ?, final_text = ?, error = ?
                WHERE run_id = ?
                """,
                (
                    status.value,
                    now_iso(),
                    iterations,
                    turn_count,
                    error_count,
                    final_text,
                    error,
                    run_id,
                ),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(operation="finish_run", underlying_error=str(e)) from e

    def get_run(self, run_id: str) -> RunRecord | None:
        """Get a run by ID, or None if not found."""
        try:
            row = self._conn.execute(
                "SELECT * FROM runs WHERE run_id = ?",
                (run_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(operation="get_run", underlying_error=str(e)) from e
        return self._row_to_run(row) if row else None

    def list_runs(self, limit: int = 100) -> list[RunRecord]:
        """List recent runs, most recent first."""
        try:
            rows = self._conn.execute(
                "SELECT * FROM runs ORDER BY created_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(operation="list_runs", underlying_error=str(e)) from e
        return [self._row_to_run(row) for row in rows]

    def get_run_config(self, run_id: str) -> LoopConfig | None:
        """Get the configuration a run was started with."""
        try:
            row = self._conn.execute(
                "SELECT config_json FROM runs WHERE run_id = ?",
                (run_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(operation="get_run_config", underlying_error=str(e)) from e
        return LoopConfig.model_validate_json(row["config_json"]) if row else None

    @staticmethod
    def _row_to_run(row: sqlite3.Row) -> RunRecord:
        return RunRecord(
            run_id=row["run_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            completed_at=(
                datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None
            ),
            status=LoopStatus(row["status"]),
            mode=LoopMode(row["mode"]),
            max_iterations=row["max_iterations"],
            iterations=row["iterations"],
            turn_count=row["turn_count"],
            error_count=row["error_count"],
            final_text=row["final_text"],
            error=row["error"],
        )

    # =========================================================================
    # Turn Operations
    # =========================================================================

    def record_turn(self, run_id: str, turn: TurnRecord) -> None:
        """Append one TurnRecord to a run."""
        decoded_json = (
            json.dumps(turn.decoded_result, default=str)
            if turn.decoded_result is not None
            else None
        )
        try:
            self._conn.execute(
                """
                INSERT INTO turns (
                    run_id, iteration, call_id, capability_name, raw_input,
                    raw_output, decoded_json, status, duration_seconds, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run_id,
                    turn.iteration,
                    turn.call_id,
                    turn.capability_name,
                    turn.raw_input,
                    turn.raw_output,
                    decoded_json,
                    turn.status.value,
                    turn.duration_seconds,
                    turn.created_at.isoformat(),
                ),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(operation="record_turn", underlying_error=str(e)) from e

    def get_turns(self, run_id: str) -> list[TurnRecord]:
        """Get the turn log of a run, in recording order."""
        try:
            rows = self._conn.execute(
                "SELECT * FROM turns WHERE run_id = ? ORDER BY seq",
                (run_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(operation="get_turns", underlying_error=str(e)) from e

        return [
            TurnRecord(
                capability_name=row["capability_name"],
                raw_input=row["raw_input"],
                raw_output=row["raw_output"],
                decoded_result=json.loads(row["decoded_json"]) if row["decoded_json"] else None,
                call_id=row["call_id"],
                iteration=row["iteration"],
                status=TurnStatus(row["status"]),
                duration_seconds=row["duration_seconds"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    # =========================================================================
    # Active Set Changes
    # =========================================================================

    def record_changes(
        self,
        run_id: str,
        iteration: int,
        added: Iterable[Capability],
        removed: Iterable[Capability],
    ) -> None:
        """Record the capabilities one iteration added and removed."""
        created_at = now_iso()
        rows = [
            (run_id, iteration, c.name, ChangeKind.REMOVED.value, created_at) for c in removed
        ] + [(run_id, iteration, c.name, ChangeKind.ADDED.value, created_at) for c in added]
        if not rows:
            return
        try:
            self._conn.executemany(
                """
                INSERT INTO capability_changes (
                    run_id, iteration, capability_name, kind, created_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(operation="record_changes", underlying_error=str(e)) from e

    def get_changes(self, run_id: str) -> list[CapabilityChange]:
        """Get the active-set changes of a run, in recording order."""
        try:
            rows = self._conn.execute(
                "SELECT * FROM capability_changes WHERE run_id = ? ORDER BY seq",
                (run_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(operation="get_changes", underlying_error=str(e)) from e

        return [
            CapabilityChange(
                run_id=row["run_id"],
                iteration=row["iteration"],
                capability_name=row["capability_name"],
                kind=ChangeKind(row["kind"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]
