"""
Replanning: aborting a loop run to force a fresh planning cycle.

A capability may raise ReplanRequested instead of returning a Result. The
signal travels through every wrapper and executor untouched and the loop
engine stops without another model round-trip. The caller then applies the
staged state mutation and starts a new run.

ReplanRequested is intentionally not a ToolLoopError. Any code that catches
Exception around a capability call must re-raise it first.
"""

from collections.abc import Callable, MutableMapping
from dataclasses import dataclass, field
from typing import Any

from toolloop.capabilities.base import (
    ArtifactResult,
    CallContext,
    Capability,
    DelegatingCapability,
    Result,
)

StateMutator = Callable[[MutableMapping[str, Any]], None]
StateUpdater = Callable[[MutableMapping[str, Any], str], None]


def _noop(state: MutableMapping[str, Any]) -> None:
    return None


class ReplanRequested(Exception):
    """
    Control-flow signal asking the caller to re-plan.

    Attributes:
        reason: Why a re-plan is needed
        state_mutator: Change to make to the caller's external state
        capability_name: The capability that raised the signal
    """

    def __init__(
        self,
        reason: str,
        state_mutator: StateMutator | None = None,
        capability_name: str | None = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.state_mutator = state_mutator or _noop
        self.capability_name = capability_name
        self._applied = False

    @property
    def applied(self) -> bool:
        """Whether apply() has already run."""
        return self._applied

    def apply(self, state: MutableMapping[str, Any]) -> None:
        """
        Run the staged mutation against external state.

        Raises:
            RuntimeError: If called a second time
        """
        if self._applied:
            raise RuntimeError(f"Replan state mutation already applied: {self.reason}")
        self._applied = True
        self.state_mutator(state)

    def __repr__(self) -> str:
        return f"ReplanRequested(reason={self.reason!r}, capability={self.capability_name!r})"


@dataclass(frozen=True)
class ReplanDecision:
    """Outcome of a decider that wants a re-plan."""

    reason: str
    state_mutator: StateMutator = field(default=_noop)


@dataclass(frozen=True)
class ReplanContext:
    """What a decider sees after the wrapped capability ran."""

    result: Result
    capability: Capability
    call_context: CallContext

    @property
    def content(self) -> str:
        return self.result.content

    @property
    def artifact(self) -> Any:
        if isinstance(self.result, ArtifactResult):
            return self.result.artifact
        return None


ReplanDecider = Callable[[ReplanContext], ReplanDecision | None]


def _store_under_name(name: str) -> StateUpdater:
    def update(state: MutableMapping[str, Any], content: str) -> None:
        state[name] = content

    return update


class ReplanningCapability(DelegatingCapability):
    """
    Runs the delegate, then always requests a re-plan.

    The delegate's result is never returned to the model. By default its text
    is stored in the external state under the delegate's name.
    """

    def __init__(
        self,
        delegate: Capability,
        reason: str,
        state_updater: StateUpdater | None = None,
    ) -> None:
        super().__init__(delegate)
        self.reason = reason
        self.state_updater = state_updater or _store_under_name(delegate.name)

    def call(self, arguments: str, context: CallContext) -> Result:
        result = self.delegate.call(arguments, context)
        content = result.content
        updater = self.state_updater

        def mutate(state: MutableMapping[str, Any]) -> None:
            updater(state, content)

        raise ReplanRequested(self.reason, mutate, capability_name=self.name)


class ConditionalReplanningCapability(DelegatingCapability):
    """
    Runs the delegate and requests a re-plan only when the decider says so.

    Example:
        ConditionalReplanningCapability(
            classify,
            lambda ctx: ReplanDecision("needs escalation") if "urgent" in ctx.content else None,
        )
    """

    def __init__(self, delegate: Capability, decider: ReplanDecider) -> None:
        super().__init__(delegate)
        self.decider = decider

    def call(self, arguments: str, context: CallContext) -> Result:
        result = self.delegate.call(arguments, context)
        decision = self.decider(ReplanContext(result, self.delegate, context))
        if decision is not None:
            raise ReplanRequested(
                decision.reason,
                decision.state_mutator,
                capability_name=self.name,
            )
        return result
