"""
Error models for xflows.

This module defines the exception taxonomy and the structured compile issue
records used throughout the compiler and runtime.

Note: This module must NOT import from any xflows modules except .enums
to maintain a clean vertical hierarchy and avoid circular imports.
"""

from dataclasses import dataclass, field
from typing import Any

from .enums import CompileErrorType, ErrorSeverity


class XFlowsError(Exception):
    """Base class for every error raised by xflows."""


@dataclass(frozen=True)
class CompileError:
    """Structured information about a single compile problem.

    Attributes:
        error_type: Categorized issue type
        message: Human-readable description
        state_id: Qualified id of the state the issue belongs to, if any
        severity: FATAL issues prevent compilation, WARNING issues do not
        context: Additional details (reference name, target, path...)
    """

    error_type: CompileErrorType
    message: str
    state_id: str | None = None
    severity: ErrorSeverity = ErrorSeverity.FATAL
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def is_fatal(self) -> bool:
        return self.severity == ErrorSeverity.FATAL

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "error_type": self.error_type.value,
            "severity": self.severity.value,
            "message": self.message,
            "state_id": self.state_id,
            "context": dict(self.context),
        }

    def __str__(self) -> str:
        if self.state_id:
            return f"[{self.state_id}] {self.message}"
        return self.message


class FlowCompileError(XFlowsError):
    """
    Exception raised when a flow definition fails to compile.

    Collects every fatal problem found in one pass so authors can fix many
    issues per compile cycle.
    """

    def __init__(
        self,
        errors: list[CompileError],
        warnings: list[CompileError] | None = None,
        flow_id: str | None = None,
    ):
        self.errors = errors
        self.warnings = warnings or []
        self.flow_id = flow_id
        self.error_count = len(errors)

        name = f"Flow '{flow_id}'" if flow_id else "Flow"
        if self.error_count == 1:
            message = f"{name} failed to compile with 1 error:\n  • {errors[0]}"
        else:
            error_list = "\n  • ".join(str(e) for e in errors)
            message = f"{name} failed to compile with {self.error_count} errors:\n  • {error_list}"

        super().__init__(message)

    def get_error_summary(self) -> str:
        """Get a formatted summary of all errors."""
        if self.error_count == 1:
            return f"1 compile error: {self.errors[0]}"
        return f"{self.error_count} compile errors:\n" + "\n".join(
            f"  {i+1}. {error}" for i, error in enumerate(self.errors)
        )


class EvaluationError(XFlowsError):
    """Raised for malformed expressions, unknown operators or invalid templates."""


class InvocationError(XFlowsError):
    """
    Raised when an actor invocation fails.

    Attributes:
        actor: Name of the actor that failed
        retryable: Whether another attempt may succeed (network, 5xx, timeout)
        status: HTTP status code when the failure came from a response
        data: Response payload or extra failure details
        attempts: Number of underlying calls made before giving up
    """

    def __init__(
        self,
        message: str,
        *,
        actor: str = "",
        retryable: bool = True,
        status: int | None = None,
        data: Any = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.message = message
        self.actor = actor
        self.retryable = retryable
        self.status = status
        self.data = data
        self.attempts = attempts

    def is_retryable(self) -> bool:
        return self.retryable

    def to_dict(self) -> dict[str, Any]:
        """Payload used as the `data` of `error.invoke.<id>` events."""
        return {
            "message": self.message,
            "actor": self.actor,
            "status": self.status,
            "retryable": self.retryable,
            "attempts": self.attempts,
            "data": self.data,
        }


class ActorTimeoutError(InvocationError):
    """An actor attempt exceeded its timeout. Always retryable."""

    def __init__(self, message: str, *, actor: str = "", timeout_ms: float | None = None):
        super().__init__(message, actor=actor, retryable=True)
        self.timeout_ms = timeout_ms


class TransitionError(XFlowsError):
    """Describes an event that matched no transition candidate.

    The runtime never raises this: unmatched events are no-ops. It is used
    for diagnostics only.
    """

    def __init__(self, event_type: str, state_id: str):
        super().__init__(f"Event '{event_type}' has no enabled transition in state '{state_id}'")
        self.event_type = event_type
        self.state_id = state_id


class FlowTerminatedError(XFlowsError):
    """Raised by send() after the instance reached a final state or was stopped."""

    def __init__(self, flow_id: str, state_id: str, event_type: str):
        super().__init__(
            f"Flow '{flow_id}' is terminated in state '{state_id}'; "
            f"cannot process event '{event_type}'"
        )
        self.flow_id = flow_id
        self.state_id = state_id
        self.event_type = event_type


class LoadError(XFlowsError):
    """Exception raised when reading a flow file fails."""


class ConfigValidationError(XFlowsError):
    """Raised when runtime configuration validation fails."""
