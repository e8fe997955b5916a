"""Compiled graph structures and graph analysis for xflows.

The compiler flattens nested states into StateNode records keyed by their
dot-qualified id ("risk.assessment.evaluation"). Parent/child links are kept
so the runtime can compute exit and entry sets, but every node is addressed
through the flat `states` mapping.

GraphAnalyzer handles structural checks on a compiled graph:
- Unreachable state detection
- Dead-end (non-final, no outgoing transition) detection
"""

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from xflows.actions import BoundAction
from xflows.actors import BaseActor, RetryPolicy
from xflows.bindings import CompiledBinding
from xflows.guards import Guard
from xflows.models import CompileError, CompileErrorType, ErrorSeverity, StateKind


@dataclass(frozen=True)
class TransitionCandidate:
    """One guarded option for an event.

    Attributes:
        event: Event type that triggers the candidate
        source: Qualified id of the state declaring it
        target: Qualified target id; None for an internal (actions-only) transition
        guard: Compiled guard, None means always enabled
        actions: Actions run between exit and entry
    """

    event: str
    source: str
    target: str | None = None
    guard: Guard | None = None
    actions: tuple[BoundAction, ...] = ()

    def is_enabled(self, context: Any, event: Any = None) -> bool:
        return self.guard is None or self.guard.check(context, event)


@dataclass(frozen=True)
class AfterTimer:
    """Delayed transition armed on every entry of its state."""

    delay_ms: int
    event: str  # Internal event type delivered when the timer fires


@dataclass(frozen=True)
class InvokeDescriptor:
    """Compiled invoke: which actor to call and how."""

    id: str
    src: str
    actor: BaseActor = field(compare=False)
    state_id: str = ""
    input: Any = None
    timeout_ms: int | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    cache_key: str | None = None
    cache_ttl_ms: int | None = None

    @property
    def done_event(self) -> str:
        return f"done.invoke.{self.id}"

    @property
    def error_event(self) -> str:
        return f"error.invoke.{self.id}"


@dataclass(frozen=True)
class ComputedField:
    field: str  # Context path (unscoped)
    expression: Any
    cache: bool = False


@dataclass(frozen=True)
class StateNode:
    """A flattened state."""

    id: str
    key: str
    kind: StateKind
    parent: str | None = None
    children: tuple[str, ...] = ()
    initial: str | None = None  # Qualified id of the initial child (compound only)
    meta: dict[str, Any] = field(default_factory=dict, hash=False)
    ui: dict[str, Any] | None = field(default=None, hash=False)
    entry: tuple[BoundAction, ...] = ()
    exit: tuple[BoundAction, ...] = ()
    input_bindings: tuple[CompiledBinding, ...] = ()
    output_bindings: tuple[CompiledBinding, ...] = ()
    computed: tuple[ComputedField, ...] = ()
    validations: BoundAction | None = None
    transitions: Mapping[str, tuple[TransitionCandidate, ...]] = field(default_factory=dict, hash=False)
    after: tuple[AfterTimer, ...] = ()
    invokes: tuple[InvokeDescriptor, ...] = ()

    @property
    def is_final(self) -> bool:
        return self.kind == StateKind.FINAL

    @property
    def is_compound(self) -> bool:
        return self.kind == StateKind.COMPOUND

    @property
    def view(self) -> Any:
        return self.meta.get("view")

    @property
    def candidates(self) -> list[TransitionCandidate]:
        return [c for group in self.transitions.values() for c in group]


@dataclass(frozen=True)
class CompiledGraph:
    """Immutable result of compiling a flow definition."""

    id: str
    initial: str
    context: dict[str, Any] = field(hash=False)
    states: Mapping[str, StateNode] = field(hash=False)
    warnings: tuple[CompileError, ...] = ()

    def get_state(self, state_id: str) -> StateNode:
        try:
            return self.states[state_id]
        except KeyError:
            raise KeyError(f"State '{state_id}' not found in flow '{self.id}'") from None

    def leaf_for(self, state_id: str) -> str:
        """Follow initial children down to the atomic/final state entered for `state_id`."""
        node = self.get_state(state_id)
        while node.is_compound and node.initial:
            node = self.get_state(node.initial)
        return node.id

    def path_to(self, state_id: str) -> list[str]:
        """Qualified ids from the outermost ancestor down to `state_id`."""
        path = [state_id]
        parent = self.get_state(state_id).parent
        while parent is not None:
            path.append(parent)
            parent = self.get_state(parent).parent
        return list(reversed(path))

    def ancestors(self, state_id: str) -> list[str]:
        """Ancestors of `state_id`, nearest first."""
        return list(reversed(self.path_to(state_id)[:-1]))

    @property
    def initial_leaf(self) -> str:
        return self.leaf_for(self.initial)

    @property
    def initial_view(self) -> Any:
        return self.get_state(self.initial_leaf).view

    @property
    def leaves(self) -> list[str]:
        return [state_id for state_id, node in self.states.items() if not node.is_compound]

    def outgoing(self, leaf_id: str) -> list[TransitionCandidate]:
        """Candidates that can fire while `leaf_id` is active (its own and its ancestors')."""
        candidates: list[TransitionCandidate] = []
        for state_id in [leaf_id, *self.ancestors(leaf_id)]:
            candidates.extend(self.get_state(state_id).candidates)
        return candidates

    def has_path(self, from_id: str, to_id: str) -> bool:
        """BFS over leaf-to-leaf edges."""
        start, goal = self.leaf_for(from_id), to_id
        visited = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            if current == goal or goal in self.path_to(current):
                return True
            for candidate in self.outgoing(current):
                if candidate.target is None:
                    continue
                nxt = self.leaf_for(candidate.target)
                if nxt not in visited:
                    visited.add(nxt)
                    queue.append(nxt)
        return False

    def reachable(self) -> set[str]:
        """Every state id (leaves and their ancestors) reachable from the initial state."""
        start = self.initial_leaf
        visited_leaves = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            if self.get_state(current).is_final:
                continue
            for candidate in self.outgoing(current):
                if candidate.target is None:
                    continue
                nxt = self.leaf_for(candidate.target)
                if nxt not in visited_leaves:
                    visited_leaves.add(nxt)
                    queue.append(nxt)

        reachable: set[str] = set()
        for leaf in visited_leaves:
            reachable.update(self.path_to(leaf))
        return reachable


class GraphAnalyzer:
    """Analyzes compiled graph structure.

    Issues returned (all warnings):
        - UNREACHABLE_STATE
        - DEAD_END_STATE
    """

    def __init__(self, graph: CompiledGraph):
        self.graph = graph

    def get_issues(self) -> list[CompileError]:
        """Run all graph-based analysis checks."""
        issues: list[CompileError] = []
        issues.extend(self._check_unreachable_states())
        issues.extend(self._check_dead_end_states())
        return issues

    def _check_unreachable_states(self) -> list[CompileError]:
        """Report the outermost states that the initial state can never reach."""
        issues: list[CompileError] = []
        reachable = self.graph.reachable()

        for state_id, node in self.graph.states.items():
            if state_id in reachable:
                continue
            # Only report the outermost unreachable state of a subtree
            if node.parent is not None and node.parent not in reachable:
                continue
            issues.append(CompileError(
                error_type=CompileErrorType.UNREACHABLE_STATE,
                message=f"State '{state_id}' is unreachable from initial state '{self.graph.initial}'",
                state_id=state_id,
                severity=ErrorSeverity.WARNING,
            ))
        return issues

    def _check_dead_end_states(self) -> list[CompileError]:
        """Identify non-final leaves with no way out."""
        issues: list[CompileError] = []
        for leaf_id in self.graph.leaves:
            node = self.graph.get_state(leaf_id)
            if node.is_final:
                continue
            if any(c.target is not None for c in self.graph.outgoing(leaf_id)):
                continue
            issues.append(CompileError(
                error_type=CompileErrorType.DEAD_END_STATE,
                message=f"State '{leaf_id}' is not final and has no outgoing transitions",
                state_id=leaf_id,
                severity=ErrorSeverity.WARNING,
            ))
        return issues
