"""
Base classes for the capability interface.

This module defines the core abstractions offered to a model:
- Result: Tagged union of what a capability returns (text, text plus
  artifact, or error)
- CallContext: Explicit runtime context passed to every call
- Capability: Abstract base class every capability implements
- FunctionCapability: Wraps a plain Python callable
- DelegatingCapability: Base for decorators around another capability

Design Principles:
    - Capabilities are caller-constructed, long-lived configuration objects
    - Identity is by name; the loop never inspects input_schema itself
    - Expected failures are returned as ErrorResult, not raised
    - The only exception a capability may deliberately raise through the
      loop is ReplanRequested (see toolloop.capabilities.replan)
"""

import json
from abc import ABC, abstractmethod
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass, field
from typing import Any

EMPTY_INPUT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


# =============================================================================
# Results
# =============================================================================


class Result:
    """
    Base of the capability result union.

    Concrete variants are TextResult, ArtifactResult and ErrorResult. All of
    them expose ``content``, the text placed in the transcript.
    """

    __slots__ = ()

    @property
    def is_error(self) -> bool:
        """Whether this result reports a failure."""
        return False

    @staticmethod
    def text(content: str) -> "TextResult":
        """Create a plain text result."""
        return TextResult(content)

    @staticmethod
    def with_artifact(content: str, artifact: Any) -> "ArtifactResult":
        """Create a text result carrying an artifact for the caller."""
        return ArtifactResult(content, artifact)

    @staticmethod
    def error(message: str, cause: BaseException | None = None) -> "ErrorResult":
        """Create an error result the model will see."""
        return ErrorResult(message, cause)


@dataclass(frozen=True)
class TextResult(Result):
    """Simple text result."""

    content: str


@dataclass(frozen=True)
class ArtifactResult(Result):
    """Text result with an additional artifact (e.g. a file, rows, an image)."""

    content: str
    artifact: Any


@dataclass(frozen=True)
class ErrorResult(Result):
    """
    Error result.

    Attributes:
        message: Human-readable failure description
        cause: The exception behind the failure, if any
    """

    message: str
    cause: BaseException | None = field(default=None, compare=False)

    @property
    def content(self) -> str:
        """Rendered form shown to the model."""
        return f"Error: {self.message}"

    @property
    def is_error(self) -> bool:
        return True


# =============================================================================
# Context
# =============================================================================


@dataclass
class CallContext:
    """
    Runtime context passed to every capability call.

    Attributes:
        run_id: Identifier of the loop run
        iteration: Loop iteration (1-based) the call belongs to
        call_id: Identifier of this call
        state: The caller's external shared state, if one was supplied
        metadata: Additional context-specific metadata
    """

    run_id: str = ""
    iteration: int = 0
    call_id: str = ""
    state: MutableMapping[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Capabilities
# =============================================================================


class Capability(ABC):
    """
    Abstract base class for everything a model can invoke.

    Subclasses must implement:
    - name property: The capability's unique identifier within a set
    - call(): Performs the capability's action

    Example:
        class EchoCapability(Capability):
            @property
            def name(self) -> str:
                return "echo"

            def call(self, arguments: str, context: CallContext) -> Result:
                return Result.text(arguments)
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The identifier the model uses to invoke this capability."""
        ...

    @property
    def description(self) -> str:
        """Human-readable description shown to the model."""
        return f"Capability: {self.name}"

    @property
    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the arguments. Forwarded to the model untouched."""
        return dict(EMPTY_INPUT_SCHEMA)

    @abstractmethod
    def call(self, arguments: str, context: CallContext) -> Result:
        """
        Execute the capability.

        Args:
            arguments: JSON arguments as a string
            context: Runtime context for this call

        Returns:
            Result to feed back to the model

        Note:
            - Return Result.error() for expected failures
            - Unexpected exceptions are converted to ErrorResult by the loop
            - Raise ReplanRequested to abort the loop and force a re-plan
        """
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.name}>"


class FunctionCapability(Capability):
    """
    Capability backed by a Python callable.

    The callable receives the decoded JSON object as a dict. Its return value
    becomes the result: a Result is passed through, strings become text, and
    anything else is rendered as JSON text with the value as artifact.

    Example:
        add = FunctionCapability(
            "add",
            "Add two numbers",
            lambda args: args["a"] + args["b"],
            input_schema={...},
        )
    """

    def __init__(
        self,
        name: str,
        description: str,
        func: Callable[[dict[str, Any]], Any],
        input_schema: dict[str, Any] | None = None,
    ) -> None:
        if not name:
            raise ValueError("Capability must have a non-empty name")
        self._name = name
        self._description = description
        self._func = func
        self._input_schema = input_schema or dict(EMPTY_INPUT_SCHEMA)

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def input_schema(self) -> dict[str, Any]:
        return self._input_schema

    def call(self, arguments: str, context: CallContext) -> Result:
        try:
            args = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError as e:
            return Result.error(f"Invalid JSON arguments for {self.name}: {e}", e)
        if not isinstance(args, dict):
            return Result.error(
                f"Arguments for {self.name} must be a JSON object, got {type(args).__name__}"
            )

        value = self._func(args)
        if isinstance(value, Result):
            return value
        if isinstance(value, str):
            return Result.text(value)
        return Result.with_artifact(json.dumps(value, default=str), value)


class DelegatingCapability(Capability):
    """
    Base class for decorators that wrap another capability.

    Name, description and schema are forwarded so the model sees the wrapped
    capability unchanged. Subclasses override call().
    """

    def __init__(self, delegate: Capability) -> None:
        self.delegate = delegate

    @property
    def name(self) -> str:
        return self.delegate.name

    @property
    def description(self) -> str:
        return self.delegate.description

    @property
    def input_schema(self) -> dict[str, Any]:
        return self.delegate.input_schema

    def call(self, arguments: str, context: CallContext) -> Result:
        return self.delegate.call(arguments, context)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.delegate!r}>"


def unwrap(capability: Capability) -> Capability:
    """Strip every DelegatingCapability layer and return the innermost capability."""
    while isinstance(capability, DelegatingCapability):
        capability = capability.delegate
    return capability
