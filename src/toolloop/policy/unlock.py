"""
Conditional unlock policy.

Locked capabilities are registered together with an UnlockCondition and join
the active set once the condition holds for the run so far. This lets a
caller express workflows such as "offer publish only after review has been
called" or "offer export once a report artifact exists".

Example:
    policy = (
        UnlockPolicy()
        .register(publish, AfterCapabilities("review"))
        .register(export, AnyOf(OnArtifact(Report), WhenPredicate(lambda s: s.iteration_count > 5)))
    )
    engine = LoopEngine(sender, policy=ChainedPolicy.with_disclosure(policy))
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from toolloop.capabilities.base import Capability
from toolloop.policy.base import InjectionContext, InjectionPolicy, InjectionResult
from toolloop.schema import TurnStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnlockState:
    """
    Progress of a run, as seen by unlock conditions.

    Attributes:
        called_names: Capabilities invoked successfully so far
        artifacts: Decoded results produced so far, in order
        iteration_count: Model round-trips completed
    """

    called_names: frozenset[str]
    artifacts: tuple[object, ...]
    iteration_count: int

    @classmethod
    def from_context(cls, context: InjectionContext) -> "UnlockState":
        turns = context.turn_history or (context.last_turn,)
        called = frozenset(t.capability_name for t in turns if t.status is TurnStatus.SUCCESS)
        artifacts = tuple(
            t.decoded_result
            for t in turns
            if t.status is TurnStatus.SUCCESS and t.decoded_result is not None
        )
        return cls(called, artifacts, context.iteration_count)


class UnlockCondition(ABC):
    """A predicate over UnlockState."""

    @abstractmethod
    def is_satisfied(self, state: UnlockState) -> bool: ...


class AfterCapabilities(UnlockCondition):
    """Satisfied once every named capability has been called successfully."""

    def __init__(self, *names: str) -> None:
        if not names:
            raise ValueError("AfterCapabilities needs at least one capability name")
        self.names = frozenset(names)

    def is_satisfied(self, state: UnlockState) -> bool:
        return self.names <= state.called_names

    def __repr__(self) -> str:
        return f"AfterCapabilities({', '.join(sorted(self.names))})"


class OnArtifact(UnlockCondition):
    """Satisfied once an artifact of the given type has been produced."""

    def __init__(self, artifact_type: type) -> None:
        self.artifact_type = artifact_type

    def is_satisfied(self, state: UnlockState) -> bool:
        return any(isinstance(a, self.artifact_type) for a in state.artifacts)

    def __repr__(self) -> str:
        return f"OnArtifact({self.artifact_type.__name__})"


class WhenPredicate(UnlockCondition):
    """Satisfied when an arbitrary predicate returns True."""

    def __init__(self, predicate: Callable[[UnlockState], bool]) -> None:
        self.predicate = predicate

    def is_satisfied(self, state: UnlockState) -> bool:
        return bool(self.predicate(state))


class AllOf(UnlockCondition):
    def __init__(self, *conditions: UnlockCondition) -> None:
        self.conditions = conditions

    def is_satisfied(self, state: UnlockState) -> bool:
        return all(c.is_satisfied(state) for c in self.conditions)


class AnyOf(UnlockCondition):
    def __init__(self, *conditions: UnlockCondition) -> None:
        self.conditions = conditions

    def is_satisfied(self, state: UnlockState) -> bool:
        return any(c.is_satisfied(state) for c in self.conditions)


@dataclass(frozen=True)
class LockedCapability:
    capability: Capability
    condition: UnlockCondition


class UnlockPolicy(InjectionPolicy):
    """Adds each registered capability once its unlock condition holds."""

    def __init__(self) -> None:
        self._locked: list[LockedCapability] = []

    def register(self, capability: Capability, condition: UnlockCondition) -> "UnlockPolicy":
        """Register a locked capability. Returns self for chaining."""
        self._locked.append(LockedCapability(capability, condition))
        return self

    @property
    def locked(self) -> tuple[LockedCapability, ...]:
        return tuple(self._locked)

    def evaluate(self, context: InjectionContext) -> InjectionResult:
        if not self._locked:
            return InjectionResult.no_change()

        state = UnlockState.from_context(context)
        unlocked = [
            entry.capability
            for entry in self._locked
            if context.find_capability(entry.capability.name) is None
            and entry.condition.is_satisfied(state)
        ]
        if unlocked:
            logger.debug("Unlocking capabilities: %s", [c.name for c in unlocked])
        return InjectionResult(to_add=tuple(unlocked))
