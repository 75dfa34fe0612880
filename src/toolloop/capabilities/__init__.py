"""
Capabilities module for toolloop.

A capability is a named, described, callable unit offered to the model.
Capabilities are constructed by the caller and passed to the loop engine
explicitly; nothing is discovered by scanning.

Architecture:
    - Capability: Abstract base class defining the interface
    - Result: TextResult | ArtifactResult | ErrorResult
    - CallContext: Explicit runtime context passed to every call
    - ActiveSet: The name-unique set visible to the model
    - DisclosureNode: A capability that unfolds into nested capabilities
    - ReplanRequested: Control-flow signal that aborts a run
"""

from toolloop.capabilities.artifacts import ArtifactCollector
from toolloop.capabilities.base import (
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
from toolloop.capabilities.disclosure import DisclosureContextCapability, DisclosureNode
from toolloop.capabilities.registry import ActiveSet
from toolloop.capabilities.replan import (
    ConditionalReplanningCapability,
    ReplanContext,
    ReplanDecision,
    ReplanningCapability,
    ReplanRequested,
)

__all__ = [
    "ActiveSet",
    "ArtifactCollector",
    "ArtifactResult",
    "CallContext",
    "Capability",
    "ConditionalReplanningCapability",
    "DelegatingCapability",
    "DisclosureContextCapability",
    "DisclosureNode",
    "ErrorResult",
    "FunctionCapability",
    "ReplanContext",
    "ReplanDecision",
    "ReplanRequested",
    "ReplanningCapability",
    "Result",
    "TextResult",
    "unwrap",
]
