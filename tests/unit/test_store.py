"""
Tests for the SQLite run store.

Tests:
    - Run creation, completion and listing
    - Turn recording and retrieval
    - Active-set change recording
    - Error wrapping
"""

import sqlite3
from unittest.mock import MagicMock

import pytest

from toolloop.capabilities import FunctionCapability
from toolloop.errors import StorageReadError, StorageWriteError
from toolloop.schema import ChangeKind, LoopConfig, LoopMode, LoopStatus, TurnRecord, TurnStatus
from toolloop.store import LoopStore


def make(name: str) -> FunctionCapability:
    return FunctionCapability(name, name, lambda args: name)


class TestRuns:
    """Tests for run operations."""

    def test_create_and_get(self, store):
        """Test a new run is recorded as running."""
        run_id = store.create_run(LoopConfig(max_iterations=7))
        run = store.get_run(run_id)
        assert run.run_id == run_id
        assert run.status is LoopStatus.RUNNING
        assert run.mode is LoopMode.SEQUENTIAL
        assert run.max_iterations == 7
        assert run.completed_at is None

    def test_finish(self, store):
        """Test the outcome is recorded."""
        run_id = store.create_run(LoopConfig())
        store.finish_run(
            run_id,
            status=LoopStatus.COMPLETED,
            iterations=3,
            turn_count=2,
            error_count=1,
            final_text="Found 5 rows.",
        )
        run = store.get_run(run_id)
        assert run.status is LoopStatus.COMPLETED
        assert run.iterations == 3
        assert run.turn_count == 2
        assert run.error_count == 1
        assert run.final_text == "Found 5 rows."
        assert run.completed_at is not None

    def test_get_missing(self, store):
        """Test unknown ids return None."""
        assert store.get_run("nope") is None
        assert store.get_run_config("nope") is None

    def test_config_round_trip(self, store):
        """Test the run's configuration is stored."""
        config = LoopConfig(mode=LoopMode.PARALLEL, max_iterations=4)
        run_id = store.create_run(config)
        assert store.get_run_config(run_id) == config

    def test_list_runs(self, store):
        """Test listing honours the limit."""
        ids = {store.create_run(LoopConfig()) for _ in range(3)}
        runs = store.list_runs()
        assert {r.run_id for r in runs} == ids
        assert len(store.list_runs(limit=2)) == 2

    def test_file_database(self, temp_dir):
        """Test a file-backed store persists across connections."""
        path = temp_dir / "runs.db"
        with LoopStore(path) as first:
            run_id = first.create_run(LoopConfig())
        with LoopStore(path) as second:
            assert second.get_run(run_id) is not None


class TestTurns:
    """Tests for turn operations."""

    def test_record_and_get(self, store):
        """Test turns come back in recording order with decoded results."""
        run_id = store.create_run(LoopConfig())
        store.record_turn(
            run_id,
            TurnRecord(
                capability_name="query",
                raw_input='{"sql": "select"}',
                raw_output="5 rows",
                decoded_result=[{"id": 1}],
                call_id="c1",
                iteration=1,
            ),
        )
        store.record_turn(
            run_id,
            TurnRecord(
                capability_name="ghost",
                raw_input="",
                raw_output="Error: not available",
                status=TurnStatus.REJECTED,
                iteration=2,
            ),
        )

        turns = store.get_turns(run_id)
        assert [t.capability_name for t in turns] == ["query", "ghost"]
        assert turns[0].decoded_result == [{"id": 1}]
        assert turns[0].call_id == "c1"
        assert turns[1].decoded_result is None
        assert turns[1].status is TurnStatus.REJECTED

    def test_unknown_run_has_no_turns(self, store):
        """Test an empty turn log."""
        assert store.get_turns("nope") == []


class TestChanges:
    """Tests for active-set change recording."""

    def test_record_and_get(self, store):
        """Test removals are recorded before additions."""
        run_id = store.create_run(LoopConfig())
        store.record_changes(run_id, 1, added=[make("query"), make("database_context")], removed=[make("database")])

        changes = store.get_changes(run_id)
        assert [(c.capability_name, c.kind) for c in changes] == [
            ("database", ChangeKind.REMOVED),
            ("query", ChangeKind.ADDED),
            ("database_context", ChangeKind.ADDED),
        ]
        assert all(c.iteration == 1 for c in changes)

    def test_nothing_to_record(self, store):
        """Test empty changes write nothing."""
        run_id = store.create_run(LoopConfig())
        store.record_changes(run_id, 1, added=[], removed=[])
        assert store.get_changes(run_id) == []


class TestErrors:
    """Tests for error wrapping."""

    def test_write_error(self, store):
        """Test sqlite errors on write become StorageWriteError."""
        store._conn = MagicMock()
        store._conn.execute.side_effect = sqlite3.OperationalError("disk I/O error")
        with pytest.raises(StorageWriteError) as exc_info:
            store.create_run(LoopConfig())
        assert exc_info.value.operation == "create_run"

    def test_read_error(self, store):
        """Test sqlite errors on read become StorageReadError."""
        store._conn = MagicMock()
        store._conn.execute.side_effect = sqlite3.OperationalError("no such table")
        with pytest.raises(StorageReadError):
            store.get_turns("x")
