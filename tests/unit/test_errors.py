"""
Tests for the toolloop exception hierarchy.

Tests:
    - Default messages, codes and suggestions
    - Context population
    - String formatting and serialization
    - Hierarchy (ToolLoopError catches everything except ReplanRequested)
"""

import pytest

from toolloop.capabilities import ReplanRequested
from toolloop.errors import (
    ERROR_CAPABILITY_NOT_FOUND,
    ERROR_CAPABILITY_TIMEOUT,
    ERROR_CONFIG_INVALID,
    ERROR_POLICY_EVALUATION_FAILED,
    ERROR_SENDER_MODEL_NOT_FOUND,
    CapabilityError,
    CapabilityExecutionError,
    CapabilityNotFoundError,
    CapabilityTimeoutError,
    ConfigError,
    DuplicateCapabilityError,
    PolicyEvaluationError,
    SenderConnectionError,
    SenderError,
    SenderModelNotFoundError,
    SenderParseError,
    StorageConnectionError,
    StorageReadError,
    StorageWriteError,
    ToolLoopError,
)


class TestToolLoopError:
    """Tests for the base exception."""

    def test_str_includes_code(self):
        """Test the display form starts with the error code."""
        error = ToolLoopError(message="something broke", code=42)
        assert str(error) == "[E42] something broke"

    def test_str_includes_suggestion(self):
        """Test the suggestion is appended on its own line."""
        error = ToolLoopError(message="broke", code=1, suggestion="fix it")
        assert str(error) == "[E1] broke\nSuggestion: fix it"

    def test_to_dict(self):
        """Test serialization for JSON output."""
        error = ToolLoopError(message="broke", code=7, context={"k": "v"})
        assert error.to_dict() == {
            "error_type": "ToolLoopError",
            "message": "broke",
            "code": 7,
            "suggestion": None,
            "context": {"k": "v"},
        }

    def test_can_be_raised(self):
        """Test errors behave as exceptions."""
        with pytest.raises(ToolLoopError):
            raise ConfigError(validation_error="bad")


class TestCapabilityErrors:
    """Tests for capability errors."""

    def test_not_found_lists_available(self):
        """Test the not-found message names what the model can call instead."""
        error = CapabilityNotFoundError(capability="delete", available=["query", "insert"])
        assert error.code == ERROR_CAPABILITY_NOT_FOUND
        assert "'delete' is not available" in error.message
        assert "query, insert" in error.message
        assert error.context["capability"] == "delete"
        assert error.context["available"] == ["query", "insert"]

    def test_not_found_with_nothing_available(self):
        """Test the message when the active set is empty."""
        error = CapabilityNotFoundError(capability="x")
        assert "Available capabilities: none" in error.message

    def test_duplicate(self):
        """Test duplicate capability message."""
        error = DuplicateCapabilityError(capability="query")
        assert error.message == "Duplicate capability name: query"
        assert isinstance(error, CapabilityError)

    def test_execution(self):
        """Test execution failure message."""
        error = CapabilityExecutionError(capability="query", underlying_error="boom")
        assert error.message == "Capability 'query' failed: boom"
        assert error.context["underlying_error"] == "boom"

    def test_timeout(self):
        """Test timeout message formats seconds compactly."""
        error = CapabilityTimeoutError(capability="slow", timeout_seconds=0.5)
        assert error.code == ERROR_CAPABILITY_TIMEOUT
        assert error.message == "Capability 'slow' timed out after 0.5s"

    def test_explicit_message_is_kept(self):
        """Test a caller-supplied message is not overwritten."""
        error = CapabilityExecutionError(capability="q", message="custom")
        assert error.message == "custom"


class TestPolicyAndConfigErrors:
    """Tests for policy and configuration errors."""

    def test_policy_evaluation(self):
        """Test policy failure carries the policy name."""
        error = PolicyEvaluationError(policy="UnlockPolicy", underlying_error="bad state")
        assert error.code == ERROR_POLICY_EVALUATION_FAILED
        assert "UnlockPolicy" in error.message
        assert error.context["policy"] == "UnlockPolicy"

    def test_config_with_path(self):
        """Test config error mentions the file."""
        error = ConfigError(path="loop.yaml", validation_error="unknown key")
        assert error.code == ERROR_CONFIG_INVALID
        assert error.message == "Invalid loop configuration in loop.yaml: unknown key"

    def test_config_without_path(self):
        """Test config error for string input."""
        error = ConfigError(validation_error="unknown key")
        assert error.message == "Invalid loop configuration: unknown key"


class TestSenderErrors:
    """Tests for sender errors."""

    def test_connection(self):
        """Test connection error includes URL and cause."""
        error = SenderConnectionError(
            sender="ollama", url="http://localhost:11434", underlying_error="refused"
        )
        assert error.message == "Cannot connect to ollama at http://localhost:11434: refused"
        assert error.context["sender"] == "ollama"
        assert isinstance(error, SenderError)

    def test_model_not_found_suggests_available(self):
        """Test the suggestion lists available models."""
        error = SenderModelNotFoundError(
            sender="ollama", model="missing", available_models=["llama3.2:latest"]
        )
        assert error.code == ERROR_SENDER_MODEL_NOT_FOUND
        assert "llama3.2:latest" in error.suggestion

    def test_model_not_found_suggests_pull(self):
        """Test the suggestion without available models."""
        error = SenderModelNotFoundError(sender="ollama", model="missing")
        assert "ollama pull missing" in error.suggestion

    def test_parse(self):
        """Test parse error message."""
        error = SenderParseError(sender="scripted", parse_error="script exhausted")
        assert error.message == "Could not parse scripted response: script exhausted"


class TestStorageErrors:
    """Tests for storage errors."""

    def test_connection(self):
        """Test storage connection error."""
        error = StorageConnectionError(db_path="/nope/x.db")
        assert "/nope/x.db" in error.message
        assert '":memory:"' in error.suggestion

    def test_write(self):
        """Test storage write error records the operation."""
        error = StorageWriteError(operation="record_turn", underlying_error="disk full")
        assert error.message == "Recording to the run database failed during record_turn: disk full"
        assert error.context["operation"] == "record_turn"

    def test_default_operation_names(self):
        """Test messages fall back to a generic operation name."""
        assert StorageWriteError(underlying_error="locked").message == (
            "Recording to the run database failed during write: locked"
        )
        assert StorageReadError(underlying_error="locked").message == (
            "Reading from the run database failed during read: locked"
        )


class TestReplanIsNotAnError:
    """ReplanRequested is a control-flow signal, not a ToolLoopError."""

    def test_not_caught_by_base_error(self):
        """Test handlers for ToolLoopError do not swallow replans."""
        assert not issubclass(ReplanRequested, ToolLoopError)
        with pytest.raises(ReplanRequested):
            try:
                raise ReplanRequested("re-plan")
            except ToolLoopError:
                pytest.fail("ReplanRequested was caught as ToolLoopError")
