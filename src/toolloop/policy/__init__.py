"""
Injection policy module for toolloop.

Injection policies decide how the active capability set changes after each
turn. They are pure: they read a snapshot and return additions and removals,
which the loop engine merges and applies between turns.

Key concepts:
    - InjectionContext: Snapshot handed to a policy
    - InjectionResult: Additions and removals (merge: later addition wins)
    - ChainedPolicy: Evaluates several policies against the same context
    - DisclosurePolicy: Unfolds DisclosureNodes
    - UnlockPolicy: Adds locked capabilities once a condition holds

A policy that raises is fatal for the run.
"""

from toolloop.policy.base import (
    FunctionPolicy,
    InjectionContext,
    InjectionPolicy,
    InjectionResult,
    NoChangePolicy,
)
from toolloop.policy.chained import ChainedPolicy
from toolloop.policy.disclosure import DisclosurePolicy
from toolloop.policy.unlock import (
    AfterCapabilities,
    AllOf,
    AnyOf,
    OnArtifact,
    UnlockCondition,
    UnlockPolicy,
    UnlockState,
    WhenPredicate,
)

__all__ = [
    "AfterCapabilities",
    "AllOf",
    "AnyOf",
    "ChainedPolicy",
    "DisclosurePolicy",
    "FunctionPolicy",
    "InjectionContext",
    "InjectionPolicy",
    "InjectionResult",
    "NoChangePolicy",
    "OnArtifact",
    "UnlockCondition",
    "UnlockPolicy",
    "UnlockState",
    "WhenPredicate",
]
