"""
Shared models for xflows.

Re-exports the TypedDict contracts, enums and error types so other modules
can import them from a single place:

    from xflows.models import FlowDefinition, CompileError, StateKind
"""

from .base import (
    ActionRef,
    ActorDefinition,
    AfterDefinition,
    BindingDefinition,
    BindingsDefinition,
    ComputedFieldDefinition,
    EventDict,
    FlowDefinition,
    GuardRef,
    HttpActorDefinition,
    InvokeDefinition,
    JsonValue,
    LifecycleDefinition,
    LogicDefinition,
    LogicExpr,
    RetryDefinition,
    StateDefinition,
    TransitionConfig,
    TransitionDefinition,
    ValidationRuleDefinition,
)
from .enums import (
    ActorKind,
    BindingStore,
    CompileErrorType,
    ErrorSeverity,
    FileFormat,
    RuntimeStatus,
    StateKind,
)
from .errors import (
    ActorTimeoutError,
    CompileError,
    ConfigValidationError,
    EvaluationError,
    FlowCompileError,
    FlowTerminatedError,
    InvocationError,
    LoadError,
    TransitionError,
    XFlowsError,
)

__all__ = [
    # Definitions
    "ActionRef",
    "ActorDefinition",
    "AfterDefinition",
    "BindingDefinition",
    "BindingsDefinition",
    "ComputedFieldDefinition",
    "EventDict",
    "FlowDefinition",
    "GuardRef",
    "HttpActorDefinition",
    "InvokeDefinition",
    "JsonValue",
    "LifecycleDefinition",
    "LogicDefinition",
    "LogicExpr",
    "RetryDefinition",
    "StateDefinition",
    "TransitionConfig",
    "TransitionDefinition",
    "ValidationRuleDefinition",
    # Enums
    "ActorKind",
    "BindingStore",
    "CompileErrorType",
    "ErrorSeverity",
    "FileFormat",
    "RuntimeStatus",
    "StateKind",
    # Errors
    "ActorTimeoutError",
    "CompileError",
    "ConfigValidationError",
    "EvaluationError",
    "FlowCompileError",
    "FlowTerminatedError",
    "InvocationError",
    "LoadError",
    "TransitionError",
    "XFlowsError",
]
