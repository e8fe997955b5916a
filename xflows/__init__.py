"""
xflows: declarative state flows compiled into an asyncio runtime.

A flow definition (JSON/YAML) describes states, guarded transitions,
lifecycle hooks, data bindings and asynchronous invokes. It is compiled once
against an explicit Registry and then executed by a FlowRuntime.

Example Usage:
    ```python
    from xflows import Registry, compile_flow, create_instance, load_flow

    registry = Registry().register_guard("isAdult", lambda ctx, ev: ctx["age"] >= 18)
    graph = compile_flow(load_flow("signup.yaml"), registry)

    runtime = create_instance(graph, registry)
    runtime.send({"type": "SUBMIT", "data": {"age": 21}})
    print(runtime.get_snapshot().state_id)
    ```
"""

__version__ = "0.1.0"

from .actors import ActorCache, ActorInvoker, HttpActor, PromiseActor, RetryPolicy, TimerActor
from .bindings import ExternalStores, InMemoryStores
from .compiler import FlowCompiler, ValidationResult, compile_flow, validate_flow
from .config import RuntimeConfig
from .graph import CompiledGraph, StateNode, TransitionCandidate
from .loader import load_and_compile, load_flow
from .logic import evaluate, evaluate_bool
from .models import (
    CompileError,
    CompileErrorType,
    EvaluationError,
    FlowCompileError,
    FlowTerminatedError,
    InvocationError,
    LoadError,
    RuntimeStatus,
    XFlowsError,
)
from .registry import Registry
from .runtime import FlowRuntime, Snapshot, create_instance
from .templates import TemplateRenderer, render
from .view import render_state_ui

__all__ = [
    # Compile and run
    "compile_flow",
    "validate_flow",
    "create_instance",
    "load_flow",
    "load_and_compile",
    "FlowCompiler",
    "FlowRuntime",
    "Registry",
    "RuntimeConfig",
    "__version__",
    # Results
    "CompiledGraph",
    "StateNode",
    "TransitionCandidate",
    "Snapshot",
    "ValidationResult",
    "RuntimeStatus",
    # Actors and stores
    "ActorCache",
    "ActorInvoker",
    "HttpActor",
    "PromiseActor",
    "TimerActor",
    "RetryPolicy",
    "ExternalStores",
    "InMemoryStores",
    # Utilities
    "evaluate",
    "evaluate_bool",
    "render",
    "render_state_ui",
    "TemplateRenderer",
    # Errors
    "XFlowsError",
    "CompileError",
    "CompileErrorType",
    "FlowCompileError",
    "EvaluationError",
    "InvocationError",
    "FlowTerminatedError",
    "LoadError",
]
