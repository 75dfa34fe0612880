"""Composition of injection policies."""

from toolloop.policy.base import InjectionContext, InjectionPolicy, InjectionResult
from toolloop.policy.disclosure import DisclosurePolicy


class ChainedPolicy(InjectionPolicy):
    """
    Evaluates several policies against the same context and merges the results.

    Policies never see each other's output. When two policies add a
    capability with the same name, the later policy in the chain wins.
    """

    def __init__(self, *policies: InjectionPolicy) -> None:
        self.policies: tuple[InjectionPolicy, ...] = policies

    @property
    def name(self) -> str:
        inner = ", ".join(p.name for p in self.policies)
        return f"ChainedPolicy[{inner}]"

    def evaluate(self, context: InjectionContext) -> InjectionResult:
        return InjectionResult.merge_all(p.evaluate(context) for p in self.policies)

    @classmethod
    def with_disclosure(
        cls,
        *additional: InjectionPolicy,
        include_context: bool = True,
    ) -> "ChainedPolicy":
        """Chain the disclosure policy first, followed by any custom policies."""
        return cls(DisclosurePolicy(include_context=include_context), *additional)
