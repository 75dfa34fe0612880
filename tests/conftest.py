"""
Pytest configuration and fixtures for toolloop tests.

This module provides shared fixtures used across unit and integration tests.
"""

import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from toolloop.capabilities import DisclosureNode, FunctionCapability, Result
from toolloop.store import LoopStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store() -> Generator[LoopStore, None, None]:
    """In-memory run store."""
    with LoopStore(":memory:") as s:
        yield s


@pytest.fixture
def query_capability() -> FunctionCapability:
    """Capability returning five rows as an artifact."""
    rows = [{"id": i} for i in range(1, 6)]
    return FunctionCapability(
        "query",
        "Run a read-only SQL query",
        lambda args: Result.with_artifact(f"{len(rows)} rows", rows),
        input_schema={
            "type": "object",
            "properties": {"sql": {"type": "string"}},
            "required": ["sql"],
        },
    )


@pytest.fixture
def database_node(query_capability: FunctionCapability) -> DisclosureNode:
    """Disclosure node folding the query capability."""
    return DisclosureNode(
        "database",
        "Database operations. Invoke to see the specific operations.",
        [query_capability],
        usage_notes="Queries are read-only.",
    )


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a loop configuration YAML for testing."""
    return """
mode: parallel
max_iterations: 5
disclosure_context: false
parallel:
  per_call_timeout_seconds: 2
  batch_timeout_seconds: 4
"""


@pytest.fixture
def sample_script_yaml() -> str:
    """Return a scripted-sender YAML that unfolds math and adds two numbers."""
    return """
responses:
  - calls:
      - name: math
  - calls:
      - name: add
        arguments: {a: 2, b: 3}
  - text: "2 + 3 = 5"
"""
