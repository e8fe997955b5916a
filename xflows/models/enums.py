"""
Enums and constants for xflows.

This module defines all enums used across the compiler and runtime to avoid
magic strings throughout the codebase.

Usage:
    from xflows.models.enums import (
        StateKind,
        CompileErrorType,
        RuntimeStatus,
    )
"""

from enum import StrEnum

# ============================================================================
# State Enums
# ============================================================================


class StateKind(StrEnum):
    """Kind of a state node."""

    ATOMIC = "atomic"
    COMPOUND = "compound"
    FINAL = "final"


class RuntimeStatus(StrEnum):
    """Lifecycle status of a running flow instance."""

    ACTIVE = "active"
    DONE = "done"  # A final state was entered
    STOPPED = "stopped"  # Torn down by the host


# ============================================================================
# Compile Result Enums
# ============================================================================


class ErrorSeverity(StrEnum):
    """Severity level of compile issues."""

    FATAL = "fatal"  # Prevents instance creation
    WARNING = "warning"  # Graph compiled but has likely problems


class CompileErrorType(StrEnum):
    """Categorized compile issue types."""

    # Structure
    SCHEMA_ERROR = "schema_error"
    MISSING_INITIAL = "missing_initial"
    DUPLICATE_STATE_ID = "duplicate_state_id"
    CYCLIC_STATE = "cyclic_state"
    INVALID_STATE = "invalid_state"

    # References
    UNKNOWN_TARGET = "unknown_target"
    UNKNOWN_GUARD = "unknown_guard"
    INVALID_GUARD = "invalid_guard"
    UNKNOWN_ACTION = "unknown_action"
    UNKNOWN_ACTOR = "unknown_actor"
    INVALID_BINDING = "invalid_binding"
    INVALID_EXPRESSION = "invalid_expression"

    # Warnings
    INVOKE_WITHOUT_ON_ERROR = "invoke_without_on_error"
    IMPLICIT_INITIAL = "implicit_initial"
    UNREACHABLE_STATE = "unreachable_state"
    DEAD_END_STATE = "dead_end_state"
    UNPROVIDED_PATH = "unprovided_path"
    MISSING_TEMPLATE_VARIABLE = "missing_template_variable"


# ============================================================================
# Actor and Binding Enums
# ============================================================================


class ActorKind(StrEnum):
    """Types of flow-level actor definitions."""

    HTTP = "http"
    TIMER = "timer"
    PROMISE = "promise"


class BindingStore(StrEnum):
    """External stores a binding can read from or write to.

    The value doubles as the path prefix used in binding descriptors.
    """

    CONTEXT = "context"
    URL_QUERY = "url.query"
    LOCAL_STORAGE = "localStorage"
    SESSION_STORAGE = "sessionStorage"

    @classmethod
    def split(cls, ref: str) -> tuple["BindingStore", str] | None:
        """Split a prefixed reference into (store, key), or None if unknown."""
        # Longest prefix first so "url.query." wins over shorter candidates
        for store in sorted(cls, key=lambda s: len(s.value), reverse=True):
            prefix = f"{store.value}."
            if ref.startswith(prefix) and len(ref) > len(prefix):
                return store, ref[len(prefix):]
        return None


class FileFormat(StrEnum):
    """Supported flow file formats."""

    YAML = "yaml"
    JSON = "json"
