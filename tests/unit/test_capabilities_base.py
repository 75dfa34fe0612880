"""
Tests for the capability base classes.

Tests:
    - Result variants
    - FunctionCapability argument decoding and return conversion
    - DelegatingCapability forwarding and unwrap
    - ArtifactCollector
"""

import threading

import pytest

from toolloop.capabilities import (
    ArtifactCollector,
    ArtifactResult,
    CallContext,
    Capability,
    DelegatingCapability,
    ErrorResult,
    FunctionCapability,
    Result,
    TextResult,
    unwrap,
)


class EchoCapability(Capability):
    """Minimal subclass relying on the base defaults."""

    @property
    def name(self) -> str:
        return "echo"

    def call(self, arguments, context):
        return Result.text(arguments)


class TestResult:
    """Tests for the Result union."""

    def test_text(self):
        """Test plain text results."""
        result = Result.text("hello")
        assert isinstance(result, TextResult)
        assert result.content == "hello"
        assert not result.is_error

    def test_with_artifact(self):
        """Test artifact results keep both parts."""
        result = Result.with_artifact("5 rows", [1, 2, 3, 4, 5])
        assert isinstance(result, ArtifactResult)
        assert result.content == "5 rows"
        assert result.artifact == [1, 2, 3, 4, 5]
        assert not result.is_error

    def test_error(self):
        """Test error results render with a prefix."""
        cause = ValueError("bad")
        result = Result.error("it broke", cause)
        assert isinstance(result, ErrorResult)
        assert result.is_error
        assert result.content == "Error: it broke"
        assert result.cause is cause

    def test_error_equality_ignores_cause(self):
        """Test two errors with the same message compare equal."""
        assert Result.error("x", ValueError()) == Result.error("x")

    def test_results_are_frozen(self):
        """Test results are immutable."""
        result = Result.text("a")
        with pytest.raises(AttributeError):
            result.content = "b"


class TestCapabilityDefaults:
    """Tests for the Capability ABC defaults."""

    def test_default_description_and_schema(self):
        """Test defaults derived from the name."""
        capability = EchoCapability()
        assert capability.description == "Capability: echo"
        assert capability.input_schema == {"type": "object", "properties": {}}

    def test_default_schema_is_a_copy(self):
        """Test mutating one schema does not leak into another."""
        capability = EchoCapability()
        capability.input_schema["extra"] = True
        assert "extra" not in capability.input_schema

    def test_cannot_instantiate_abstract(self):
        """Test the ABC enforces name and call."""
        with pytest.raises(TypeError):
            Capability()


class TestFunctionCapability:
    """Tests for FunctionCapability."""

    def test_string_return_becomes_text(self):
        """Test a str return value."""
        capability = FunctionCapability("greet", "Greet", lambda args: f"hi {args['name']}")
        result = capability.call('{"name": "ada"}', CallContext())
        assert result == TextResult("hi ada")

    def test_structured_return_becomes_artifact(self):
        """Test non-string values are rendered as JSON with the value as artifact."""
        capability = FunctionCapability("rows", "Rows", lambda args: {"count": 2})
        result = capability.call("{}", CallContext())
        assert isinstance(result, ArtifactResult)
        assert result.content == '{"count": 2}'
        assert result.artifact == {"count": 2}

    def test_result_passes_through(self):
        """Test a Result return value is not wrapped again."""
        capability = FunctionCapability("fail", "Fail", lambda args: Result.error("nope"))
        assert capability.call("{}", CallContext()) == Result.error("nope")

    def test_blank_arguments(self):
        """Test blank arguments decode to an empty dict."""
        seen = {}
        capability = FunctionCapability("f", "F", lambda args: seen.update(args=args) or "ok")
        capability.call("  ", CallContext())
        assert seen["args"] == {}

    def test_invalid_json(self):
        """Test malformed arguments give an error result."""
        capability = FunctionCapability("f", "F", lambda args: "ok")
        result = capability.call("{nope", CallContext())
        assert result.is_error
        assert result.message.startswith("Invalid JSON arguments for f")

    def test_non_object_arguments(self):
        """Test non-object JSON is rejected."""
        capability = FunctionCapability("f", "F", lambda args: "ok")
        result = capability.call("[1, 2]", CallContext())
        assert result.message == "Arguments for f must be a JSON object, got list"

    def test_exceptions_propagate(self):
        """Test unexpected exceptions are left for the loop to handle."""

        def boom(args):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            FunctionCapability("f", "F", boom).call("{}", CallContext())

    def test_empty_name_rejected(self):
        """Test names must be non-empty."""
        with pytest.raises(ValueError):
            FunctionCapability("", "F", lambda args: "ok")

    def test_metadata(self):
        """Test name, description and schema are exposed."""
        schema = {"type": "object", "properties": {"x": {"type": "number"}}}
        capability = FunctionCapability("f", "Does f", lambda args: "ok", schema)
        assert capability.name == "f"
        assert capability.description == "Does f"
        assert capability.input_schema == schema
        assert repr(capability) == "<FunctionCapability: f>"


class TestDelegatingCapability:
    """Tests for DelegatingCapability and unwrap."""

    def test_forwards_metadata_and_call(self):
        """Test the wrapper is invisible to the model."""
        inner = FunctionCapability("inner", "Inner capability", lambda args: "done")
        wrapper = DelegatingCapability(inner)
        assert wrapper.name == "inner"
        assert wrapper.description == "Inner capability"
        assert wrapper.input_schema == inner.input_schema
        assert wrapper.call("{}", CallContext()) == Result.text("done")

    def test_unwrap_nested(self):
        """Test unwrap strips every layer."""
        inner = EchoCapability()
        wrapped = DelegatingCapability(DelegatingCapability(inner))
        assert unwrap(wrapped) is inner
        assert unwrap(inner) is inner


class TestArtifactCollector:
    """Tests for ArtifactCollector."""

    def test_append_only_order(self):
        """Test artifacts are kept in collection order."""
        collector = ArtifactCollector()
        collector.add("a")
        collector.add({"b": 1})
        assert collector.snapshot() == ["a", {"b": 1}]
        assert len(collector) == 2

    def test_snapshot_is_a_copy(self):
        """Test callers cannot mutate the collector through a snapshot."""
        collector = ArtifactCollector()
        collector.add(1)
        collector.snapshot().append(2)
        assert len(collector) == 1

    def test_of_type(self):
        """Test filtering by type."""
        collector = ArtifactCollector()
        for artifact in ("a", 1, "b", [2]):
            collector.add(artifact)
        assert collector.of_type(str) == ["a", "b"]

    def test_concurrent_adds(self):
        """Test adds from many threads are all kept."""
        collector = ArtifactCollector()
        threads = [
            threading.Thread(target=lambda: [collector.add(i) for i in range(100)])
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(collector) == 800
