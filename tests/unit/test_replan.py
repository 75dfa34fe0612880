"""
Tests for replanning capabilities.

Tests:
    - ReplanRequested.apply runs exactly once
    - ReplanningCapability always raises and stages the delegate's output
    - ConditionalReplanningCapability consults its decider
"""

import pytest

from toolloop.capabilities import (
    CallContext,
    ConditionalReplanningCapability,
    FunctionCapability,
    ReplanDecision,
    ReplanningCapability,
    ReplanRequested,
    Result,
)


@pytest.fixture
def classify() -> FunctionCapability:
    return FunctionCapability(
        "classify",
        "Classify a ticket",
        lambda args: Result.with_artifact("urgent" if args.get("urgent") else "normal", {"p": 1}),
    )


class TestReplanRequested:
    """Tests for the replan signal."""

    def test_apply_once(self):
        """Test the state mutation runs exactly once."""
        state = {}
        signal = ReplanRequested("re-plan", lambda s: s.update(done=True))
        assert not signal.applied
        signal.apply(state)
        assert state == {"done": True}
        assert signal.applied

        with pytest.raises(RuntimeError):
            signal.apply(state)

    def test_default_mutator_is_noop(self):
        """Test a signal without mutator leaves state alone."""
        state = {"a": 1}
        ReplanRequested("re-plan").apply(state)
        assert state == {"a": 1}

    def test_reason_is_message(self):
        """Test the reason is the exception message."""
        assert str(ReplanRequested("need more data")) == "need more data"


class TestReplanningCapability:
    """Tests for ReplanningCapability."""

    def test_always_raises(self, classify):
        """Test the wrapper never returns a result."""
        capability = ReplanningCapability(classify, "ticket classified")
        with pytest.raises(ReplanRequested) as exc_info:
            capability.call('{"urgent": true}', CallContext())
        assert exc_info.value.reason == "ticket classified"
        assert exc_info.value.capability_name == "classify"

    def test_default_updater_stores_content(self, classify):
        """Test the delegate's text lands in state under its name."""
        capability = ReplanningCapability(classify, "classified")
        with pytest.raises(ReplanRequested) as exc_info:
            capability.call('{"urgent": true}', CallContext())
        state = {}
        exc_info.value.apply(state)
        assert state == {"classify": "urgent"}

    def test_custom_updater(self, classify):
        """Test a caller-supplied updater."""
        capability = ReplanningCapability(
            classify, "classified", state_updater=lambda s, content: s.setdefault("log", []).append(content)
        )
        with pytest.raises(ReplanRequested) as exc_info:
            capability.call("{}", CallContext())
        state = {}
        exc_info.value.apply(state)
        assert state == {"log": ["normal"]}

    def test_is_transparent_to_model(self, classify):
        """Test name and description are the delegate's."""
        capability = ReplanningCapability(classify, "x")
        assert capability.name == "classify"
        assert capability.description == "Classify a ticket"


class TestConditionalReplanningCapability:
    """Tests for ConditionalReplanningCapability."""

    def test_returns_result_when_no_decision(self, classify):
        """Test the result passes through when the decider declines."""
        capability = ConditionalReplanningCapability(classify, lambda ctx: None)
        result = capability.call("{}", CallContext())
        assert result.content == "normal"

    def test_raises_on_decision(self, classify):
        """Test a decision becomes a replan with its mutator."""
        capability = ConditionalReplanningCapability(
            classify,
            lambda ctx: ReplanDecision("escalate", lambda s: s.update(priority=ctx.artifact["p"]))
            if ctx.content == "urgent"
            else None,
        )
        assert capability.call('{"urgent": false}', CallContext()).content == "normal"

        with pytest.raises(ReplanRequested) as exc_info:
            capability.call('{"urgent": true}', CallContext())
        state = {}
        exc_info.value.apply(state)
        assert exc_info.value.reason == "escalate"
        assert state == {"priority": 1}

    def test_decider_sees_context(self, classify):
        """Test the decider receives result, capability and call context."""
        seen = []
        call_context = CallContext(run_id="r1", iteration=2, call_id="c1")
        ConditionalReplanningCapability(classify, lambda ctx: seen.append(ctx)).call("{}", call_context)
        assert seen[0].capability is classify
        assert seen[0].call_context is call_context
        assert seen[0].artifact == {"p": 1}
