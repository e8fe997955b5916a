"""
Runtime orchestrator for compiled flows.

A FlowRuntime runs one instance of a CompiledGraph. Events are processed
one at a time through a single queue: host events from send(), timer
firings and actor completions all take the same path, so a transition's
exit, actions and entry finish before the next event is looked at.

Every entered state gets a StateScope. Timers and invoke tasks started on
entry belong to that scope and are cancelled when the state is exited; a
completion that arrives for an inactive scope is dropped.

Usage:
    graph = compile_flow(definition, registry)
    runtime = create_instance(graph, registry)
    runtime.subscribe(lambda snapshot: print(snapshot.state_id))
    runtime.send({"type": "SUBMIT", "data": {...}})
"""

import asyncio
import copy
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from xflows.actions import BoundAction
from xflows.actors import ActorInvoker
from xflows.bindings import ExternalStores, InMemoryStores, apply_inputs, apply_outputs
from xflows.graph import CompiledGraph, InvokeDescriptor, StateNode, TransitionCandidate
from xflows.logic import evaluate
from xflows.models import (
    EvaluationError,
    EventDict,
    FlowTerminatedError,
    InvocationError,
    RuntimeStatus,
    TransitionError,
)
from xflows.paths import set_path
from xflows.registry import Registry
from xflows.view import render_state_ui

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Observable state of a flow instance after an event."""

    state_id: str
    context: Any
    status: RuntimeStatus
    meta: dict[str, Any] = field(default_factory=dict)
    event_type: str | None = None  # Last processed event

    @property
    def view(self) -> Any:
        return self.meta.get("view")

    @property
    def done(self) -> bool:
        return self.status == RuntimeStatus.DONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "stateId": self.state_id,
            "context": self.context,
            "status": self.status.value,
            "view": self.view,
            "event": self.event_type,
        }


Listener = Callable[[Snapshot], None]


class StateScope:
    """Cancellation token for one entry of one state."""

    def __init__(self, state_id: str):
        self.state_id = state_id
        self.active = True
        self.timers: list[asyncio.TimerHandle] = []
        self.tasks: list[asyncio.Task[Any]] = []

    def cancel(self) -> None:
        self.active = False
        for timer in self.timers:
            timer.cancel()
        for task in self.tasks:
            if not task.done():
                task.cancel()
        self.timers.clear()

    def __repr__(self) -> str:
        return f"StateScope({self.state_id!r}, active={self.active})"


def normalize_event(event: str | EventDict | dict[str, Any]) -> dict[str, Any]:
    """Accept "TYPE" or {"type": "TYPE", ...}."""
    if isinstance(event, str):
        return {"type": event}
    if isinstance(event, dict) and isinstance(event.get("type"), str) and event["type"]:
        return dict(event)
    raise ValueError(f"Event must be a string or an object with a 'type', got {event!r}")


class FlowRuntime:
    """Executes one instance of a compiled flow."""

    def __init__(
        self,
        graph: CompiledGraph,
        registry: Registry | None = None,
        *,
        stores: ExternalStores | None = None,
        invoker: ActorInvoker | None = None,
    ):
        self.graph = graph
        self.registry = registry or Registry()
        self.stores: ExternalStores = stores if stores is not None else InMemoryStores()
        self.invoker = invoker or ActorInvoker(renderer=self.registry.renderer)

        self._context: Any = copy.deepcopy(graph.context)
        self._state_id: str = graph.initial_leaf
        self._active: list[str] = []  # Outermost first
        self._scopes: dict[str, StateScope] = {}
        self._status = RuntimeStatus.ACTIVE
        self._started = False
        self._queue: deque[tuple[dict[str, Any], StateScope | None]] = deque()
        self._processing = False
        self._last_event: str | None = None
        self._listeners: list[Listener] = []
        self._waiters: list[asyncio.Event] = []
        self._computed_once: set[str] = set()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state_id(self) -> str:
        return self._state_id

    @property
    def status(self) -> RuntimeStatus:
        return self._status

    @property
    def context(self) -> Any:
        return copy.deepcopy(self._context)

    @property
    def active_states(self) -> list[str]:
        """Active configuration, outermost first."""
        return list(self._active)

    # ------------------------------------------------------------------
    # Host operations
    # ------------------------------------------------------------------

    def start(self) -> "FlowRuntime":
        """Enter the initial state. Calling it twice is a no-op."""
        if self._started:
            return self
        self._started = True
        logger.debug(f"Starting flow '{self.graph.id}' at '{self.graph.initial}'")

        self._processing = True
        try:
            start_event = {"type": "xflows.init"}
            for state_id in self.graph.path_to(self.graph.initial_leaf):
                self._enter(state_id, start_event)
            self._state_id = self.graph.initial_leaf
            if self.graph.get_state(self._state_id).is_final:
                self._finish()
        finally:
            self._processing = False
        self._publish()
        self._drain()
        return self

    def send(self, event: str | EventDict | dict[str, Any]) -> None:
        """
        Process an event to completion.

        Events sent while another event is being processed (from a
        listener, for example) are queued and handled afterwards.

        Raises:
            FlowTerminatedError: If the instance is done or stopped
            ValueError: If the event has no type
        """
        normalized = normalize_event(event)
        if self._status != RuntimeStatus.ACTIVE:
            raise FlowTerminatedError(self.graph.id, self._state_id, normalized["type"])
        if not self._started:
            self.start()
        self._queue.append((normalized, None))
        self._drain()

    def get_snapshot(self) -> Snapshot:
        return Snapshot(
            state_id=self._state_id,
            context=copy.deepcopy(self._context),
            status=self._status,
            meta=copy.deepcopy(self.graph.get_state(self._state_id).meta),
            event_type=self._last_event,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def stop(self) -> None:
        """Cancel all pending work and mark the instance stopped."""
        if self._status != RuntimeStatus.ACTIVE:
            return
        self._cancel_all()
        self._status = RuntimeStatus.STOPPED
        self._queue.clear()
        logger.debug(f"Flow '{self.graph.id}' stopped in '{self._state_id}'")
        self._publish()

    def can(self, event: str | EventDict | dict[str, Any]) -> bool:
        """Whether the event would select a transition right now."""
        return self.explain(event) is None

    def explain(self, event: str | EventDict | dict[str, Any]) -> TransitionError | None:
        """None if the event would be handled, otherwise a TransitionError describing why not."""
        normalized = normalize_event(event)
        if self._status == RuntimeStatus.ACTIVE and self._select(normalized) is not None:
            return None
        return TransitionError(normalized["type"], self._state_id)

    async def wait_for(self, predicate: Callable[[Snapshot], bool], timeout: float | None = 1.0) -> Snapshot:
        """
        Wait until a published snapshot satisfies `predicate`.

        Raises:
            TimeoutError: If the predicate does not hold within `timeout` seconds
        """

        async def _wait() -> Snapshot:
            while True:
                snapshot = self.get_snapshot()
                if predicate(snapshot):
                    return snapshot
                if self._status != RuntimeStatus.ACTIVE:
                    raise TimeoutError(f"Flow '{self.graph.id}' terminated in '{self._state_id}'")
                changed = asyncio.Event()
                self._waiters.append(changed)
                await changed.wait()

        return await asyncio.wait_for(_wait(), timeout)

    async def wait_for_state(self, state_id: str, timeout: float | None = 1.0) -> Snapshot:
        """Wait until `state_id` (a leaf or one of its ancestors) is active."""
        return await self.wait_for(
            lambda snapshot: snapshot.state_id == state_id or state_id in self._active, timeout
        )

    def render_view(self) -> dict[str, Any]:
        """Render the current state's `ui` block against the current context."""
        node = self.graph.get_state(self._state_id)
        return render_state_ui(node.ui or {}, self._context, self.registry.renderer)

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    def _drain(self) -> None:
        if self._processing:
            return
        self._processing = True
        try:
            while self._queue and self._status == RuntimeStatus.ACTIVE:
                event, scope = self._queue.popleft()
                if scope is not None and not scope.active:
                    logger.debug(f"Dropping '{event['type']}' for exited state '{scope.state_id}'")
                    continue
                self._process(event)
                self._publish()
        finally:
            self._processing = False
            if self._status != RuntimeStatus.ACTIVE:
                self._queue.clear()

    def _process(self, event: dict[str, Any]) -> None:
        self._last_event = event["type"]
        candidate = self._select(event)
        if candidate is None:
            if event["type"].startswith("error.invoke."):
                logger.warning(f"Unhandled invoke failure in '{self._state_id}': {event.get('data')}")
            else:
                logger.debug(str(TransitionError(event["type"], self._state_id)))
            return
        self._take(candidate, event)

    def _select(self, event: dict[str, Any]) -> TransitionCandidate | None:
        # Innermost state first, first enabled candidate wins
        for state_id in [self._state_id, *self.graph.ancestors(self._state_id)]:
            for candidate in self.graph.get_state(state_id).transitions.get(event["type"], ()):
                if candidate.is_enabled(self._context, event):
                    return candidate
        return None

    def _take(self, candidate: TransitionCandidate, event: dict[str, Any]) -> None:
        if candidate.target is None:
            logger.debug(f"Internal transition '{event['type']}' in '{candidate.source}'")
            self._run_actions(candidate.actions, event)
            return

        target_leaf = self.graph.leaf_for(candidate.target)
        depth = self._domain_depth(candidate.source, candidate.target)
        logger.debug(f"Transition '{event['type']}': {self._state_id} -> {target_leaf}")

        for state_id in reversed(self._active[depth:]):
            self._exit(state_id, event)
        self._run_actions(candidate.actions, event)
        for state_id in self.graph.path_to(target_leaf)[depth:]:
            self._enter(state_id, event)

        self._state_id = target_leaf
        if self.graph.get_state(target_leaf).is_final:
            self._finish()

    def _domain_depth(self, source: str, target: str) -> int:
        """Number of active states kept across the transition.

        The kept prefix is the common ancestry of source and target, not
        including either of them, so a self-transition re-enters its state.
        """
        source_path = self.graph.path_to(source)[:-1]
        target_path = self.graph.path_to(target)[:-1]
        depth = 0
        for a, b in zip(source_path, target_path):
            if a != b:
                break
            depth += 1
        return depth

    # ------------------------------------------------------------------
    # Entry and exit
    # ------------------------------------------------------------------

    def _enter(self, state_id: str, event: dict[str, Any]) -> None:
        node = self.graph.get_state(state_id)
        logger.debug(f"Entering '{state_id}'")
        scope = StateScope(state_id)
        self._scopes[state_id] = scope
        self._active.append(state_id)

        context = self._context
        if node.input_bindings:
            context = apply_inputs(node.input_bindings, context, self.stores)
        context = self._apply_computed(node, context, event)
        if node.validations is not None:
            context = node.validations(context, event)
        self._context = context

        self._run_actions(node.entry, event)
        if node.after or node.invokes:
            loop = self._running_loop(state_id)
            for timer in node.after:
                handle = loop.call_later(timer.delay_ms / 1000, self._deliver, scope, {"type": timer.event})
                scope.timers.append(handle)
            for descriptor in node.invokes:
                task = loop.create_task(self._run_invoke(descriptor, scope, self._context, event))
                scope.tasks.append(task)

    def _exit(self, state_id: str, event: dict[str, Any]) -> None:
        node = self.graph.get_state(state_id)
        logger.debug(f"Exiting '{state_id}'")
        scope = self._scopes.pop(state_id, None)
        if scope is not None:
            scope.cancel()
        if state_id in self._active:
            self._active.remove(state_id)

        if node.output_bindings:
            apply_outputs(node.output_bindings, self._context, self.stores)
        self._run_actions(node.exit, event)

    def _apply_computed(self, node: StateNode, context: Any, event: dict[str, Any]) -> Any:
        for computed in node.computed:
            key = f"{node.id}:{computed.field}"
            if computed.cache and key in self._computed_once:
                continue
            try:
                value = evaluate(computed.expression, context, event)
            except EvaluationError as e:
                logger.warning(f"Computed field '{computed.field}' in '{node.id}' failed, storing null: {e}")
                value = None
            context = set_path(context, computed.field, value)
            if computed.cache:
                self._computed_once.add(key)
        return context

    def _run_actions(self, actions: tuple[BoundAction, ...], event: dict[str, Any]) -> None:
        for action in actions:
            self._context = action(self._context, event)

    def _running_loop(self, state_id: str) -> asyncio.AbstractEventLoop:
        try:
            return asyncio.get_running_loop()
        except RuntimeError as e:
            raise RuntimeError(
                f"State '{state_id}' schedules timers or invokes; run the flow inside an asyncio event loop"
            ) from e

    # ------------------------------------------------------------------
    # Asynchronous completions
    # ------------------------------------------------------------------

    async def _run_invoke(
        self, descriptor: InvokeDescriptor, scope: StateScope, context: Any, event: dict[str, Any]
    ) -> None:
        try:
            outcome = await self.invoker.invoke(descriptor, context, event)
        except InvocationError as e:
            logger.debug(f"Invoke '{descriptor.id}' failed after {e.attempts} attempt(s): {e}")
            completion = {"type": descriptor.error_event, "data": e.to_dict()}
        else:
            completion = {"type": descriptor.done_event, "data": outcome.value}

        try:
            self._deliver(scope, completion)
        except Exception:
            logger.exception(f"Processing '{completion['type']}' failed in flow '{self.graph.id}'")

    def _deliver(self, scope: StateScope, event: dict[str, Any]) -> None:
        if not scope.active or self._status != RuntimeStatus.ACTIVE:
            logger.debug(f"Dropping '{event['type']}' for inactive scope {scope!r}")
            return
        self._queue.append((event, scope))
        self._drain()

    # ------------------------------------------------------------------
    # Termination and notification
    # ------------------------------------------------------------------

    def _finish(self) -> None:
        logger.debug(f"Flow '{self.graph.id}' reached final state '{self._state_id}'")
        self._cancel_all()
        self._status = RuntimeStatus.DONE

    def _cancel_all(self) -> None:
        for scope in self._scopes.values():
            scope.cancel()
        self._scopes.clear()

    def _publish(self) -> None:
        snapshot = self.get_snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception(f"Listener {listener!r} failed on snapshot for '{snapshot.state_id}'")

        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            waiter.set()


def create_instance(
    graph: CompiledGraph,
    registry: Registry | None = None,
    *,
    stores: ExternalStores | None = None,
    invoker: ActorInvoker | None = None,
    start: bool = True,
) -> FlowRuntime:
    """Create a runtime for `graph`, started unless `start=False`."""
    runtime = FlowRuntime(graph, registry, stores=stores, invoker=invoker)
    if start:
        runtime.start()
    return runtime
