"""
Base model definitions for xflows.

This module is the single source of truth for the TypedDict contracts that
describe flow definitions as read from JSON/YAML. Runtime structures produced
by the compiler live in xflows.graph.
"""

from typing import Any, NotRequired, TypedDict

__all__ = [
    # Expressions
    "JsonValue",
    "LogicExpr",
    "GuardRef",
    "ActionRef",
    # Transitions
    "TransitionDefinition",
    "TransitionConfig",
    "AfterDefinition",
    # Invokes
    "RetryDefinition",
    "InvokeDefinition",
    "HttpActorDefinition",
    "ActorDefinition",
    # Bindings
    "BindingDefinition",
    "BindingsDefinition",
    # States
    "LifecycleDefinition",
    "ComputedFieldDefinition",
    "ValidationRuleDefinition",
    "LogicDefinition",
    "StateDefinition",
    # Flow
    "FlowDefinition",
    "EventDict",
]

JsonValue = Any
LogicExpr = dict[str, Any]

# "greaterThan:context.score:50", a named guard, or a JSON-Logic object
GuardRef = str | LogicExpr

# "assignField:field:user", a named action, or {"type": "...", ...params}
ActionRef = str | dict[str, Any]


# ============================================================================
# Transition Types
# ============================================================================


class TransitionDefinition(TypedDict, total=False):
    """One transition candidate."""

    target: str
    guard: GuardRef
    cond: GuardRef  # Alias of guard
    actions: list[ActionRef]
    description: str


# A target string, one candidate, or an ordered list of candidates
TransitionConfig = str | TransitionDefinition | list[str | TransitionDefinition]


class AfterDefinition(TypedDict, total=False):
    """Delayed transition fired once per state entry."""

    delay: int  # Milliseconds
    target: str
    guard: GuardRef
    actions: list[ActionRef]


# ============================================================================
# Invoke and Actor Types
# ============================================================================


class RetryDefinition(TypedDict, total=False):
    """Retry policy for an invoke."""

    max: int  # Retries after the first attempt
    backoffMs: int
    multiplier: float


class InvokeDefinition(TypedDict, total=False):
    """Asynchronous actor call started on state entry."""

    id: str
    src: str
    input: JsonValue
    timeoutMs: int
    retry: RetryDefinition
    cacheKey: str
    cacheTtlMs: int
    mapResult: dict[str, str]
    assignTo: str
    onDone: TransitionConfig
    onError: TransitionConfig


class HttpActorDefinition(TypedDict, total=False):
    """Request template for HTTP actors."""

    method: str
    url: str
    headers: dict[str, str]
    params: dict[str, Any]
    body: JsonValue
    expectStatus: int | list[int]
    isError: LogicExpr
    timeoutMs: int


class ActorDefinition(TypedDict, total=False):
    """Flow-level actor definition."""

    type: str  # ActorKind value
    http: HttpActorDefinition
    ms: int
    src: str  # Registered actor wrapped by a "promise" definition
    input: JsonValue
    cacheTtlMs: int  # Default for invokes of this actor
    retry: RetryDefinition  # Default for invokes of this actor


# ============================================================================
# Binding Types
# ============================================================================


class BindingDefinition(TypedDict):
    """Mapping between the context and an external store."""

    source: str
    target: str
    transform: NotRequired[str]


class BindingsDefinition(TypedDict, total=False):
    inputs: list[BindingDefinition]
    outputs: list[BindingDefinition]


# ============================================================================
# State Types
# ============================================================================


class LifecycleDefinition(TypedDict, total=False):
    onEnter: list[ActionRef]
    onExit: list[ActionRef]


class ComputedFieldDefinition(TypedDict):
    field: str
    expression: LogicExpr
    cache: NotRequired[bool]


class ValidationRuleDefinition(TypedDict):
    field: str
    expression: LogicExpr
    message: NotRequired[str]


class LogicDefinition(TypedDict, total=False):
    computed: list[ComputedFieldDefinition]
    validations: list[ValidationRuleDefinition]


class StateDefinition(TypedDict, total=False):
    """A state as written in a flow file."""

    type: str  # StateKind value
    initial: str
    meta: dict[str, Any]
    ui: dict[str, Any]
    lifecycle: LifecycleDefinition
    entry: list[ActionRef]
    exit: list[ActionRef]
    binding: BindingsDefinition
    logic: LogicDefinition
    invoke: list[InvokeDefinition] | InvokeDefinition
    on: dict[str, TransitionConfig]
    after: list[AfterDefinition] | dict[str, TransitionConfig]
    states: dict[str, "StateDefinition"]


# ============================================================================
# Flow Types
# ============================================================================


class FlowDefinition(TypedDict, total=False):
    """Top-level flow file contents."""

    id: str
    version: str
    initial: str
    context: dict[str, Any]
    states: dict[str, StateDefinition]
    guards: dict[str, GuardRef]
    actions: dict[str, ActionRef]
    actors: dict[str, ActorDefinition]


class EventDict(TypedDict, total=False):
    """Event delivered to a running flow."""

    type: str
    data: JsonValue
    payload: JsonValue
