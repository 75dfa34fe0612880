"""
Injection policy framework.

An injection policy runs after every capability invocation and decides which
capabilities to add to or remove from the active set. Policies are pure:
they read an InjectionContext snapshot and describe changes in an
InjectionResult; the loop engine applies the merged result between turns.

How it works:
    1. The engine finishes all calls of a model turn
    2. For each TurnRecord it builds an InjectionContext (same active set for all)
    3. The policy returns an InjectionResult per context
    4. Results are merged and applied atomically to the active set
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from toolloop.capabilities.base import Capability
from toolloop.schema import Message, TurnRecord


@dataclass(frozen=True)
class InjectionContext:
    """
    Immutable snapshot handed to injection policies.

    Attributes:
        conversation_history: Transcript as of the end of the turn
        current_capabilities: Active set before this turn's changes
        last_turn: The invocation being evaluated
        iteration_count: Model round-trips completed so far
        turn_history: Every TurnRecord of the run up to and including last_turn
    """

    conversation_history: tuple[Message, ...]
    current_capabilities: tuple[Capability, ...]
    last_turn: TurnRecord
    iteration_count: int
    turn_history: tuple[TurnRecord, ...] = field(default=())

    def find_capability(self, name: str) -> Capability | None:
        """Find an active capability by name."""
        for capability in self.current_capabilities:
            if capability.name == name:
                return capability
        return None

    @property
    def active_names(self) -> list[str]:
        return [c.name for c in self.current_capabilities]


@dataclass(frozen=True)
class InjectionResult:
    """
    Changes a policy wants made to the active set.

    Empty on both sides means "no change".
    """

    to_add: tuple[Capability, ...] = ()
    to_remove: tuple[Capability, ...] = ()

    @property
    def has_changes(self) -> bool:
        return bool(self.to_add or self.to_remove)

    @classmethod
    def no_change(cls) -> "InjectionResult":
        return cls()

    @classmethod
    def add(cls, *capabilities: Capability) -> "InjectionResult":
        return cls(to_add=tuple(capabilities))

    @classmethod
    def remove(cls, *capabilities: Capability) -> "InjectionResult":
        return cls(to_remove=tuple(capabilities))

    @classmethod
    def replace(cls, old: Capability, new: Iterable[Capability]) -> "InjectionResult":
        """Remove one capability and add its replacements in the same change."""
        return cls(to_add=tuple(new), to_remove=(old,))

    def merge(self, other: "InjectionResult") -> "InjectionResult":
        """
        Combine with a later result.

        Additions are keyed by name and the later one wins; removals are
        unioned by name.
        """
        additions = {c.name: c for c in self.to_add}
        for capability in other.to_add:
            additions.pop(capability.name, None)
            additions[capability.name] = capability

        removals = {c.name: c for c in self.to_remove}
        for capability in other.to_remove:
            removals.setdefault(capability.name, capability)

        return InjectionResult(
            to_add=tuple(additions.values()),
            to_remove=tuple(removals.values()),
        )

    @classmethod
    def merge_all(cls, results: Iterable["InjectionResult"]) -> "InjectionResult":
        merged = cls.no_change()
        for result in results:
            merged = merged.merge(result)
        return merged

    def __repr__(self) -> str:
        added = ", ".join(c.name for c in self.to_add)
        removed = ", ".join(c.name for c in self.to_remove)
        return f"InjectionResult(add=[{added}], remove=[{removed}])"


class InjectionPolicy(ABC):
    """
    Abstract base class for injection policies.

    Subclasses implement evaluate(). Raising from evaluate() is fatal for the
    run: the engine wraps the exception in PolicyEvaluationError.
    """

    @property
    def name(self) -> str:
        """Name used in logs and errors."""
        return self.__class__.__name__

    @abstractmethod
    def evaluate(self, context: InjectionContext) -> InjectionResult:
        """Compute the changes for one invocation."""
        ...

    def __repr__(self) -> str:
        return f"<{self.name}>"


class NoChangePolicy(InjectionPolicy):
    """Policy that never changes the active set."""

    def evaluate(self, context: InjectionContext) -> InjectionResult:
        return InjectionResult.no_change()


class FunctionPolicy(InjectionPolicy):
    """Adapts a plain function to the InjectionPolicy interface."""

    def __init__(
        self,
        func: Callable[[InjectionContext], InjectionResult],
        name: str | None = None,
    ) -> None:
        self._func = func
        self._name = name or getattr(func, "__name__", "FunctionPolicy")

    @property
    def name(self) -> str:
        return self._name

    def evaluate(self, context: InjectionContext) -> InjectionResult:
        return self._func(context)
