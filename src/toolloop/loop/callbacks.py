"""
Loop lifecycle callbacks.

Inspectors observe the loop without changing it. Transformers may rewrite
what the model sees: the messages sent on a round-trip, the text of each
capability result, and the transcript carried into the next iteration.

Both base classes have no-op defaults, so subclasses override only the
hooks they need.
"""

import logging
from dataclasses import dataclass

from toolloop.capabilities.base import Capability, Result
from toolloop.schema import CapabilityCall, Message, MessageRole, ModelResponse, TurnRecord

logger = logging.getLogger(__name__)


# =============================================================================
# Contexts
# =============================================================================


@dataclass(frozen=True)
class BeforeModelCallContext:
    transcript: tuple[Message, ...]
    iteration: int
    capabilities: tuple[Capability, ...]


@dataclass(frozen=True)
class AfterModelCallContext:
    transcript: tuple[Message, ...]
    iteration: int
    response: ModelResponse


@dataclass(frozen=True)
class AfterTurnContext:
    transcript: tuple[Message, ...]
    iteration: int
    call: CapabilityCall
    result: Result
    result_text: str
    turn: TurnRecord


@dataclass(frozen=True)
class AfterIterationContext:
    transcript: tuple[Message, ...]
    iteration: int
    calls: tuple[CapabilityCall, ...]
    active_names: tuple[str, ...]


# =============================================================================
# Interfaces
# =============================================================================


class LoopInspector:
    """Read-only observer of loop events."""

    def before_model_call(self, context: BeforeModelCallContext) -> None:
        return None

    def after_model_call(self, context: AfterModelCallContext) -> None:
        return None

    def after_turn(self, context: AfterTurnContext) -> None:
        return None

    def after_iteration(self, context: AfterIterationContext) -> None:
        return None


class LoopTransformer:
    """Rewrites what flows between the loop and the model."""

    def transform_before_model_call(self, context: BeforeModelCallContext) -> list[Message]:
        """Messages to send this round-trip. The transcript itself is unchanged."""
        return list(context.transcript)

    def transform_tool_result(self, context: AfterTurnContext) -> str:
        """Text to place in the transcript for a capability result."""
        return context.result_text

    def transform_after_iteration(self, context: AfterIterationContext) -> list[Message]:
        """Transcript to carry into the next iteration."""
        return list(context.transcript)


# =============================================================================
# Built-ins
# =============================================================================


class LoggingInspector(LoopInspector):
    """Logs every loop event at a fixed level."""

    def __init__(self, level: int = logging.DEBUG, log: logging.Logger | None = None) -> None:
        self.level = level
        self.log = log or logger

    def before_model_call(self, context: BeforeModelCallContext) -> None:
        self.log.log(
            self.level,
            "before_model_call: iteration=%d, messages=%d, capabilities=%d",
            context.iteration,
            len(context.transcript),
            len(context.capabilities),
        )

    def after_model_call(self, context: AfterModelCallContext) -> None:
        self.log.log(
            self.level,
            "after_model_call: iteration=%d, calls=%d, text_length=%d",
            context.iteration,
            len(context.response.calls),
            len(context.response.text or ""),
        )

    def after_turn(self, context: AfterTurnContext) -> None:
        self.log.log(
            self.level,
            "after_turn: iteration=%d, capability=%s, status=%s, result_length=%d",
            context.iteration,
            context.call.name,
            context.turn.status.value,
            len(context.result_text),
        )

    def after_iteration(self, context: AfterIterationContext) -> None:
        self.log.log(
            self.level,
            "after_iteration: iteration=%d, calls=%d, active=%s",
            context.iteration,
            len(context.calls),
            list(context.active_names),
        )


class SlidingWindowTransformer(LoopTransformer):
    """
    Keeps only the most recent messages.

    System messages are kept regardless of age unless
    preserve_system_messages is False.
    """

    def __init__(self, max_messages: int, preserve_system_messages: bool = True) -> None:
        if max_messages <= 0:
            raise ValueError("max_messages must be positive")
        self.max_messages = max_messages
        self.preserve_system_messages = preserve_system_messages

    def transform_before_model_call(self, context: BeforeModelCallContext) -> list[Message]:
        return self._window(list(context.transcript))

    def transform_after_iteration(self, context: AfterIterationContext) -> list[Message]:
        return self._window(list(context.transcript))

    def _window(self, messages: list[Message]) -> list[Message]:
        if len(messages) <= self.max_messages:
            return messages
        if not self.preserve_system_messages:
            return messages[-self.max_messages :]

        system = [m for m in messages if m.role is MessageRole.SYSTEM]
        others = [m for m in messages if m.role is not MessageRole.SYSTEM]
        slots = max(self.max_messages - len(system), 0)
        return system + (others[-slots:] if slots else [])


class ToolResultTruncatingTransformer(LoopTransformer):
    """Truncates long capability results before they enter the transcript."""

    def __init__(self, max_length: int = 10_000, truncation_marker: str | None = None) -> None:
        if max_length <= 0:
            raise ValueError("max_length must be positive")
        self.max_length = max_length
        self.truncation_marker = truncation_marker

    def transform_tool_result(self, context: AfterTurnContext) -> str:
        text = context.result_text
        if len(text) <= self.max_length:
            return text
        logger.debug(
            "Truncated '%s' result: %d -> %d chars",
            context.call.name,
            len(text),
            self.max_length,
        )
        marker = self.truncation_marker
        if marker is None:
            marker = f"\n... [truncated, {self.max_length} chars shown]"
        return text[: self.max_length] + marker
