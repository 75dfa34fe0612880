"""
Tests for loop lifecycle callbacks.

Tests:
    - No-op defaults of LoopInspector / LoopTransformer
    - LoggingInspector
    - SlidingWindowTransformer
    - ToolResultTruncatingTransformer
"""

import logging

import pytest

from toolloop.capabilities import Result
from toolloop.loop import (
    AfterIterationContext,
    AfterModelCallContext,
    AfterTurnContext,
    BeforeModelCallContext,
    LoggingInspector,
    LoopTransformer,
    SlidingWindowTransformer,
    ToolResultTruncatingTransformer,
)
from toolloop.schema import CapabilityCall, Message, MessageRole, ModelResponse, TurnRecord


def transcript(n_system: int, n_other: int) -> tuple[Message, ...]:
    return tuple(Message.system(f"s{i}") for i in range(n_system)) + tuple(
        Message.user(f"u{i}") for i in range(n_other)
    )


def turn_context(text: str) -> AfterTurnContext:
    call = CapabilityCall(id="c1", name="query")
    return AfterTurnContext(
        transcript=(),
        iteration=1,
        call=call,
        result=Result.text(text),
        result_text=text,
        turn=TurnRecord(capability_name="query", raw_input="{}", raw_output=text),
    )


class TestDefaults:
    """Tests for the identity defaults."""

    def test_transformer_identity(self):
        """Test the base transformer changes nothing."""
        transformer = LoopTransformer()
        messages = transcript(1, 2)
        assert transformer.transform_before_model_call(BeforeModelCallContext(messages, 1, ())) == list(messages)
        assert transformer.transform_tool_result(turn_context("abc")) == "abc"
        assert transformer.transform_after_iteration(
            AfterIterationContext(messages, 1, (), ())
        ) == list(messages)


class TestLoggingInspector:
    """Tests for LoggingInspector."""

    def test_logs_every_event(self, caplog):
        """Test each hook writes one record at the configured level."""
        inspector = LoggingInspector(level=logging.INFO)
        with caplog.at_level(logging.INFO, logger="toolloop.loop.callbacks"):
            inspector.before_model_call(BeforeModelCallContext(transcript(1, 1), 1, ()))
            inspector.after_model_call(AfterModelCallContext((), 1, ModelResponse(text="hi")))
            inspector.after_turn(turn_context("ok"))
            inspector.after_iteration(AfterIterationContext((), 1, (), ("query",)))

        messages = [r.getMessage() for r in caplog.records]
        assert len(messages) == 4
        assert messages[0].startswith("before_model_call: iteration=1, messages=2")
        assert "capability=query, status=success" in messages[2]
        assert "active=['query']" in messages[3]


class TestSlidingWindowTransformer:
    """Tests for SlidingWindowTransformer."""

    def test_short_transcript_untouched(self):
        """Test nothing is dropped under the limit."""
        messages = transcript(1, 2)
        result = SlidingWindowTransformer(5).transform_before_model_call(
            BeforeModelCallContext(messages, 1, ())
        )
        assert result == list(messages)

    def test_keeps_system_and_latest(self):
        """Test system messages survive and the newest others fill the window."""
        messages = transcript(1, 6)
        result = SlidingWindowTransformer(3).transform_before_model_call(
            BeforeModelCallContext(messages, 1, ())
        )
        assert [m.content for m in result] == ["s0", "u4", "u5"]

    def test_without_system_preservation(self):
        """Test a plain window when system messages are not preserved."""
        messages = transcript(1, 4)
        result = SlidingWindowTransformer(2, preserve_system_messages=False).transform_after_iteration(
            AfterIterationContext(messages, 1, (), ())
        )
        assert [m.content for m in result] == ["u2", "u3"]

    def test_only_system_messages_fit(self):
        """Test a window no larger than the system messages."""
        messages = transcript(2, 3)
        result = SlidingWindowTransformer(2).transform_before_model_call(
            BeforeModelCallContext(messages, 1, ())
        )
        assert all(m.role is MessageRole.SYSTEM for m in result)

    def test_invalid_size(self):
        """Test the window must be positive."""
        with pytest.raises(ValueError):
            SlidingWindowTransformer(0)


class TestToolResultTruncatingTransformer:
    """Tests for ToolResultTruncatingTransformer."""

    def test_short_result_untouched(self):
        """Test results under the limit pass through."""
        assert ToolResultTruncatingTransformer(10).transform_tool_result(turn_context("short")) == "short"

    def test_truncates_with_default_marker(self):
        """Test long results are cut and marked."""
        text = ToolResultTruncatingTransformer(5).transform_tool_result(turn_context("abcdefghij"))
        assert text == "abcde\n... [truncated, 5 chars shown]"

    def test_custom_marker(self):
        """Test a caller-supplied marker."""
        text = ToolResultTruncatingTransformer(3, truncation_marker="…").transform_tool_result(
            turn_context("abcdef")
        )
        assert text == "abc…"

    def test_invalid_length(self):
        """Test the limit must be positive."""
        with pytest.raises(ValueError):
            ToolResultTruncatingTransformer(0)
