"""
Schema definitions for toolloop.

This module defines the Pydantic models used throughout toolloop:
- Message/CapabilityCall/ModelResponse: the transcript and what the model returns
- TurnRecord: the immutable record of one capability invocation
- LoopConfig/ParallelConfig: how a loop run is bounded and executed
- RunRecord: metadata about a stored run

Design Decisions:
    - Runtime records are immutable (frozen=True)
    - Configuration rejects unknown keys (extra="forbid") so typos fail loudly
    - Configuration is changed by copying (with_overrides), never in place
"""

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from toolloop.errors import ConfigError


# =============================================================================
# Enums
# =============================================================================


class MessageRole(str, Enum):
    """Who authored a transcript message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TurnStatus(str, Enum):
    """Outcome of a single capability invocation."""

    SUCCESS = "success"
    ERROR = "error"
    REJECTED = "rejected"
    TIMEOUT = "timeout"
    REPLAN = "replan"


class LoopMode(str, Enum):
    """How the capability calls of one model turn are executed."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class LoopStatus(str, Enum):
    """Terminal state of a loop run (plus the in-flight states used by the store)."""

    RUNNING = "running"
    COMPLETED = "completed"
    MAX_ITERATIONS = "max_iterations"
    REPLAN_REQUESTED = "replan_requested"
    FAILED = "failed"


class ChangeKind(str, Enum):
    """Direction of an active-set change."""

    ADDED = "added"
    REMOVED = "removed"


# =============================================================================
# Transcript Models
# =============================================================================


class CapabilityCall(BaseModel):
    """
    One capability invocation requested by the model.

    Attributes:
        id: Identifier the model (or sender) assigned to this call
        name: Name of the capability to invoke
        arguments: Raw JSON arguments exactly as the model produced them
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Call identifier")
    name: str = Field(..., description="Capability name")
    arguments: str = Field(default="", description="Raw JSON arguments")


class Message(BaseModel):
    """
    A single transcript entry.

    Tool results carry the id and name of the call they answer; assistant
    messages may carry the capability calls they requested.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    role: MessageRole
    content: str = ""
    calls: list[CapabilityCall] = Field(default_factory=list)
    call_id: str | None = None
    name: str | None = None

    @classmethod
    def system(cls, content: str) -> "Message":
        """Create a system message."""
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        """Create a user message."""
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str = "",
        calls: list[CapabilityCall] | None = None,
    ) -> "Message":
        """Create an assistant message, optionally requesting capability calls."""
        return cls(role=MessageRole.ASSISTANT, content=content, calls=calls or [])

    @classmethod
    def tool_result(cls, call: CapabilityCall, content: str) -> "Message":
        """Create the transcript entry answering a capability call."""
        return cls(
            role=MessageRole.TOOL,
            content=content,
            call_id=call.id,
            name=call.name,
        )


class ModelResponse(BaseModel):
    """
    What a model-message sender returns for one round-trip.

    Either final text (no calls) or one or more capability calls. Text may
    accompany calls; it is kept in the transcript but does not end the loop.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    text: str | None = None
    calls: list[CapabilityCall] = Field(default_factory=list)

    @property
    def has_calls(self) -> bool:
        """Whether the model asked for any capability invocation."""
        return bool(self.calls)

    def to_message(self) -> Message:
        """Render this response as the assistant transcript entry."""
        return Message.assistant(content=self.text or "", calls=list(self.calls))


class TurnRecord(BaseModel):
    """
    Immutable record of one capability invocation.

    Attributes:
        capability_name: Name the model invoked
        raw_input: Arguments exactly as the model produced them
        dispatched_input: Arguments actually passed to the capability after
            normalisation (None for records read back from the store)
        raw_output: Text result (errors rendered as "Error: ...")
        decoded_result: Artifact, or decoded JSON output, if any
        call_id: The call identifier
        iteration: Loop iteration (1-based) the call belonged to
        status: Outcome of the invocation
        duration_seconds: Wall-clock duration of the invocation
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    capability_name: str
    raw_input: str
    raw_output: str
    dispatched_input: str | None = None
    decoded_result: Any = None
    call_id: str = ""
    iteration: int = Field(default=0, ge=0)
    status: TurnStatus = TurnStatus.SUCCESS
    duration_seconds: float = 0.0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_error(self) -> bool:
        """Whether the model saw an error for this call."""
        return self.status is not TurnStatus.SUCCESS


# =============================================================================
# Configuration Models
# =============================================================================


class ParallelConfig(BaseModel):
    """
    Timeouts and sizing for parallel batch execution.

    Attributes:
        per_call_timeout_seconds: Limit for each call, measured from batch start
        batch_timeout_seconds: Limit for the whole batch
        max_workers: Worker threads per batch (None = one per call)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    per_call_timeout_seconds: float = Field(default=30.0, gt=0)
    batch_timeout_seconds: float = Field(default=60.0, gt=0)
    max_workers: int | None = Field(default=None, gt=0)


class LoopConfig(BaseModel):
    """
    Configuration for one loop engine.

    Attributes:
        mode: Sequential (default) or parallel execution of a turn's calls
        max_iterations: Maximum model round-trips before the run is exhausted
        disclosure_context: Whether unfolding creates a context capability
        parallel: Timeouts used in parallel mode
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: LoopMode = LoopMode.SEQUENTIAL
    max_iterations: int = Field(default=20, gt=0)
    disclosure_context: bool = True
    parallel: ParallelConfig = Field(default_factory=ParallelConfig)

    @property
    def is_parallel(self) -> bool:
        """Whether multi-call turns run concurrently."""
        return self.mode is LoopMode.PARALLEL

    def with_overrides(self, **changes: Any) -> "LoopConfig":
        """Return a validated copy with the given fields replaced."""
        data = self.model_dump()
        data.update(changes)
        return LoopConfig.model_validate(data)


class RunRecord(BaseModel):
    """
    Metadata about a stored loop run.

    The turns and active-set changes of the run are stored separately.
    """

    model_config = ConfigDict(extra="forbid")

    run_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    status: LoopStatus = LoopStatus.RUNNING
    mode: LoopMode = LoopMode.SEQUENTIAL
    max_iterations: int = 0
    iterations: int = 0
    turn_count: int = 0
    error_count: int = 0
    final_text: str | None = None
    error: str | None = None


class CapabilityChange(BaseModel):
    """One capability entering or leaving the active set during a run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    run_id: str
    iteration: int = Field(ge=0)
    capability_name: str
    kind: ChangeKind
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def _validate_config(data: Any, path: str | None) -> LoopConfig:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(
            path=path,
            validation_error=f"expected a mapping, got {type(data).__name__}",
        )
    try:
        return LoopConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(path=path, validation_error=str(e)) from e


def load_loop_config(path: Path | str) -> LoopConfig:
    """
    Load a loop configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated LoopConfig

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the YAML is malformed or doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(path=str(path), validation_error=str(e)) from e

    return _validate_config(data, str(path))


def load_loop_config_from_string(content: str) -> LoopConfig:
    """Load a loop configuration from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(validation_error=str(e)) from e
    return _validate_config(data, None)
