"""
Exception hierarchy for toolloop.

All toolloop exceptions inherit from ToolLoopError, allowing callers to catch
every library-specific failure with a single except clause.

Exception Categories:
    - Capability errors: unknown names, duplicates, failures, timeouts
    - PolicyEvaluationError: an injection policy raised (fatal for the run)
    - Sender errors: the model round-trip failed
    - ConfigError: invalid loop configuration
    - Storage errors: run recording failed

Replanning is NOT part of this hierarchy. ReplanRequested (see
toolloop.capabilities.replan) is a control-flow signal, and code that handles
ToolLoopError must never swallow it.

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (capability, policy, model where applicable)
    - All errors provide actionable suggestions where possible
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Capability errors: 1xxx
ERROR_CAPABILITY_NOT_FOUND = 1001
ERROR_CAPABILITY_DUPLICATE = 1002
ERROR_CAPABILITY_EXECUTION_FAILED = 1003
ERROR_CAPABILITY_TIMEOUT = 1004

# Policy errors: 2xxx
ERROR_POLICY_EVALUATION_FAILED = 2001

# Sender errors: 3xxx
ERROR_SENDER_CONNECTION = 3001
ERROR_SENDER_TIMEOUT = 3002
ERROR_SENDER_MODEL_NOT_FOUND = 3003
ERROR_SENDER_PARSE = 3004

# Configuration errors: 4xxx
ERROR_CONFIG_INVALID = 4001

# Storage errors: 5xxx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class ToolLoopError(Exception):
    """
    Base exception for all toolloop errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Capability Errors
# =============================================================================


@dataclass
class CapabilityError(ToolLoopError):
    """
    Base class for capability errors.

    Attributes:
        capability: Name of the capability involved
    """

    capability: str = ""

    def __post_init__(self) -> None:
        self.context["capability"] = self.capability


@dataclass
class CapabilityNotFoundError(CapabilityError):
    """Raised (or rendered to the model) when a capability is not in the active set."""

    available: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.message:
            listing = ", ".join(self.available) if self.available else "none"
            self.message = (
                f"Capability '{self.capability}' is not available. "
                f"Available capabilities: {listing}"
            )
        if self.code == 0:
            self.code = ERROR_CAPABILITY_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Call one of the available capabilities instead"
        super().__post_init__()
        self.context["available"] = list(self.available)


@dataclass
class DuplicateCapabilityError(CapabilityError):
    """Raised when two capabilities with the same name would share a set."""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Duplicate capability name: {self.capability}"
        if self.code == 0:
            self.code = ERROR_CAPABILITY_DUPLICATE
        if not self.suggestion:
            self.suggestion = "Capability names must be unique within one set"
        super().__post_init__()


@dataclass
class CapabilityExecutionError(CapabilityError):
    """A capability raised while executing."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Capability '{self.capability}' failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CAPABILITY_EXECUTION_FAILED
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class CapabilityTimeoutError(CapabilityError):
    """A capability exceeded its per-call or batch timeout."""

    timeout_seconds: float = 0.0

    def __post_init__(self) -> None:
        if not self.message:
            self.message = (
                f"Capability '{self.capability}' timed out after {self.timeout_seconds:g}s"
            )
        if self.code == 0:
            self.code = ERROR_CAPABILITY_TIMEOUT
        if not self.suggestion:
            self.suggestion = "Increase per_call_timeout_seconds or batch_timeout_seconds"
        super().__post_init__()
        self.context["timeout_seconds"] = self.timeout_seconds


# =============================================================================
# Policy Errors
# =============================================================================


@dataclass
class PolicyEvaluationError(ToolLoopError):
    """
    Raised when an injection policy throws.

    This is fatal for the run: the active set could otherwise be left in a
    state nobody can verify.

    Attributes:
        policy: Name of the policy that failed
        underlying_error: The original exception message
    """

    policy: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Injection policy {self.policy} failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_POLICY_EVALUATION_FAILED
        self.context.update({
            "policy": self.policy,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Sender Errors
# =============================================================================


@dataclass
class SenderError(ToolLoopError):
    """
    Base class for model-message sender errors.

    Attributes:
        sender: Name of the sender backend (e.g., "ollama")
        model: Model identifier
    """

    sender: str = ""
    model: str = ""

    def __post_init__(self) -> None:
        self.context.update({
            "sender": self.sender,
            "model": self.model,
        })


@dataclass
class SenderConnectionError(SenderError):
    """Cannot reach the model backend."""

    url: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Cannot connect to {self.sender} at {self.url}"
            if self.underlying_error:
                self.message += f": {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_SENDER_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the model server is running and reachable"
        super().__post_init__()
        self.context["url"] = self.url


@dataclass
class SenderTimeoutError(SenderError):
    """The model round-trip took too long."""

    timeout_seconds: float = 0.0

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"{self.sender} timed out after {self.timeout_seconds:g}s"
        if self.code == 0:
            self.code = ERROR_SENDER_TIMEOUT
        if not self.suggestion:
            self.suggestion = "Increase the sender timeout or use a smaller model"
        super().__post_init__()
        self.context["timeout_seconds"] = self.timeout_seconds


@dataclass
class SenderModelNotFoundError(SenderError):
    """The requested model is not available on the backend."""

    available_models: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Model not found: {self.model}"
        if self.code == 0:
            self.code = ERROR_SENDER_MODEL_NOT_FOUND
        if not self.suggestion:
            if self.available_models:
                self.suggestion = f"Available models: {', '.join(self.available_models[:5])}"
            else:
                self.suggestion = f"Pull the model first (e.g. `ollama pull {self.model}`)"
        super().__post_init__()
        self.context["available_models"] = list(self.available_models)


@dataclass
class SenderParseError(SenderError):
    """The backend answered with something that is not a usable response."""

    raw_response: str = ""
    parse_error: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Could not parse {self.sender} response: {self.parse_error}"
        if self.code == 0:
            self.code = ERROR_SENDER_PARSE
        super().__post_init__()
        self.context.update({
            "raw_response": self.raw_response,
            "parse_error": self.parse_error,
        })


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigError(ToolLoopError):
    """Raised when a loop configuration cannot be loaded or validated."""

    path: str | None = None
    validation_error: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            where = f" in {self.path}" if self.path else ""
            self.message = f"Invalid loop configuration{where}: {self.validation_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context.update({
            "path": self.path,
            "validation_error": self.validation_error,
        })


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(ToolLoopError):
    """
    Base class for run-store failures.

    Attributes:
        operation: LoopStore method that failed (e.g. "record_turn")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """The SQLite file could not be opened or initialised."""

    db_path: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Cannot open run database at {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = 'Pass a writable --db path, or ":memory:" for a throwaway store'
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """A run, turn or change could not be recorded."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Recording to the run database failed during {self.operation or 'write'}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Recorded runs could not be read back."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Reading from the run database failed during {self.operation or 'read'}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error
