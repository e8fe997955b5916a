"""
State-graph compiler for xflows.

Turns a flow definition (a plain dict, usually read from JSON or YAML) into
an immutable CompiledGraph. Every reference is resolved here, once:
targets, guards, actions, bindings and actors. Problems are collected in a
single pass and reported together.

Compilation stages:
1. Flatten nested states into dot-qualified ids (cycle and duplicate checks)
2. Structural validation with the pydantic schema
3. Per-state compilation (kind, initial child, hooks, bindings, logic,
   transitions, timers, invokes)
4. Graph analysis and provided-path checks (warnings)
"""

import copy
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from xflows.actions import ActionResolutionError, BoundAction, bind_action, context_path
from xflows.actors import BaseActor, HttpActor, RetryPolicy
from xflows.bindings import BindingError, CompiledBinding, parse_binding
from xflows.config import RuntimeConfig
from xflows.graph import (
    AfterTimer,
    CompiledGraph,
    ComputedField,
    GraphAnalyzer,
    InvokeDescriptor,
    StateNode,
    TransitionCandidate,
)
from xflows.guards import Guard, GuardParser, GuardResolutionError
from xflows.logic import unknown_operators
from xflows.models import (
    CompileError,
    CompileErrorType,
    ErrorSeverity,
    FlowCompileError,
    FlowDefinition,
    StateKind,
)
from xflows.paths import flatten_paths
from xflows.registry import ActorResolutionError, Registry
from xflows.schema import check_structure

logger = logging.getLogger(__name__)

DEFAULT_FLOW_ID = "flow"

# Issues that leave the definition too malformed to resolve references in
_BLOCKING_ISSUES = frozenset({
    CompileErrorType.SCHEMA_ERROR,
    CompileErrorType.CYCLIC_STATE,
    CompileErrorType.INVALID_STATE,
})


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a flow definition without raising."""

    issues: tuple[CompileError, ...] = ()
    flow_id: str | None = None

    @property
    def valid(self) -> bool:
        return not any(issue.is_fatal for issue in self.issues)

    @property
    def error_issues(self) -> list[CompileError]:
        return [issue for issue in self.issues if issue.is_fatal]

    @property
    def warning_issues(self) -> list[CompileError]:
        return [issue for issue in self.issues if not issue.is_fatal]

    @property
    def errors(self) -> list[str]:
        return [str(issue) for issue in self.error_issues]

    @property
    def warnings(self) -> list[str]:
        return [str(issue) for issue in self.warning_issues]

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


@dataclass
class _RawState:
    id: str
    key: str
    parent: str | None
    definition: dict[str, Any]
    children: list[str] = field(default_factory=list)


def _as_candidates(config: Any) -> list[Any]:
    if config is None:
        return []
    if isinstance(config, list):
        return list(config)
    return [config]


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _is_provided(path: str, provided: set[str]) -> bool:
    return any(
        path == key or path.startswith(f"{key}.") or path.startswith(f"{key}[") or key.startswith(f"{path}.")
        for key in provided
    )


class FlowCompiler:
    """
    Compiles one flow definition against a registry.

    Usage:
        compiler = FlowCompiler(definition, registry)
        graph = compiler.compile()        # raises FlowCompileError
        result = compiler.validate()      # never raises
    """

    def __init__(
        self,
        definition: FlowDefinition | dict[str, Any],
        registry: Registry | None = None,
        config: RuntimeConfig | None = None,
    ):
        self.definition = definition
        self.registry = registry or Registry(config=config)
        self.config = config or self.registry.config
        self._reset()

    def _reset(self) -> None:
        self._issues: list[CompileError] = []
        self._raw: dict[str, _RawState] = {}
        self._top_level: list[str] = []
        self._flow_guards: Mapping[str, Any] = {}
        self._flow_actions: Mapping[str, Any] = {}
        self._flow_actors: dict[str, BaseActor] = {}
        self._failed_actors: set[str] = set()
        self._invoke_ids: set[str] = set()

    @property
    def flow_id(self) -> str:
        if isinstance(self.definition, dict) and self.definition.get("id"):
            return str(self.definition["id"])
        return DEFAULT_FLOW_ID

    @property
    def default_retry(self) -> RetryPolicy:
        return RetryPolicy(
            max=self.config.default_retry_max,
            backoff_ms=self.config.default_backoff_ms,
            multiplier=self.config.default_backoff_multiplier,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def compile(self) -> CompiledGraph:
        """
        Compile the definition.

        Raises:
            FlowCompileError: With every fatal issue found
        """
        graph = self._run()
        errors = [issue for issue in self._issues if issue.is_fatal]
        warnings = [issue for issue in self._issues if not issue.is_fatal]
        if errors or graph is None:
            raise FlowCompileError(errors, warnings, flow_id=self.flow_id)

        for warning in warnings:
            logger.debug(f"Flow '{self.flow_id}' compiled with warning: {warning}")
        return graph

    def validate(self) -> ValidationResult:
        """Run every check and return the issues instead of raising."""
        self._run()
        return ValidationResult(issues=tuple(self._issues), flow_id=self.flow_id)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _run(self) -> CompiledGraph | None:
        self._reset()
        definition = self.definition
        if not isinstance(definition, dict):
            self._error(CompileErrorType.SCHEMA_ERROR, "Flow definition must be an object")
            return None

        states = definition.get("states")
        if isinstance(states, dict):
            self._flatten(states, parent=None, containers=frozenset({id(definition)}))

        # Self-containing definitions would recurse forever in the schema check
        if not self._has(CompileErrorType.CYCLIC_STATE):
            self._issues.extend(check_structure(definition))
        if any(issue.error_type in _BLOCKING_ISSUES for issue in self._issues):
            return None

        self._flow_guards = definition.get("guards") or {}
        self._flow_actions = definition.get("actions") or {}
        self._build_flow_actors(definition.get("actors") or {})

        initial = self._resolve_flow_initial(definition.get("initial"))
        nodes = {state_id: self._compile_state(raw) for state_id, raw in self._raw.items()}
        if initial is None or self._has_errors():
            return None

        graph = CompiledGraph(
            id=self.flow_id,
            initial=initial,
            context=copy.deepcopy(definition.get("context") or {}),
            states=nodes,
        )
        self._issues.extend(GraphAnalyzer(graph).get_issues())
        self._check_provided_paths(graph)
        if self._has_errors():
            return None

        warnings = tuple(issue for issue in self._issues if not issue.is_fatal)
        return replace(graph, warnings=warnings)

    # ------------------------------------------------------------------
    # Issue helpers
    # ------------------------------------------------------------------

    def _error(
        self,
        error_type: CompileErrorType,
        message: str,
        state_id: str | None = None,
        **context: Any,
    ) -> None:
        self._issues.append(CompileError(error_type, message, state_id=state_id, context=context))

    def _warn(
        self,
        error_type: CompileErrorType,
        message: str,
        state_id: str | None = None,
        **context: Any,
    ) -> None:
        self._issues.append(
            CompileError(error_type, message, state_id=state_id, severity=ErrorSeverity.WARNING, context=context)
        )

    def _has(self, error_type: CompileErrorType) -> bool:
        return any(issue.error_type == error_type for issue in self._issues)

    def _has_errors(self) -> bool:
        return any(issue.is_fatal for issue in self._issues)

    # ------------------------------------------------------------------
    # Flattening
    # ------------------------------------------------------------------

    def _flatten(self, states: dict[str, Any], parent: str | None, containers: frozenset[int]) -> None:
        for key, definition in states.items():
            state_id = f"{parent}.{key}" if parent else str(key)

            if not isinstance(definition, dict):
                self._error(CompileErrorType.INVALID_STATE, f"State '{state_id}' must be an object", state_id)
                continue
            if id(definition) in containers:
                self._error(CompileErrorType.CYCLIC_STATE, f"State '{state_id}' contains itself", state_id)
                continue
            if state_id in self._raw:
                self._error(
                    CompileErrorType.DUPLICATE_STATE_ID, f"Duplicate state id '{state_id}'", state_id
                )
                continue

            self._raw[state_id] = _RawState(id=state_id, key=str(key), parent=parent, definition=definition)
            if parent is None:
                self._top_level.append(state_id)
            else:
                self._raw[parent].children.append(state_id)

            children = definition.get("states")
            if isinstance(children, dict) and children:
                self._flatten(children, state_id, containers | {id(definition)})

    def _resolve_flow_initial(self, initial: Any) -> str | None:
        if not initial:
            self._error(CompileErrorType.MISSING_INITIAL, "Flow has no initial state")
            return None
        name = str(initial)
        name = name[1:] if name.startswith("#") else name
        if name not in self._raw:
            self._error(
                CompileErrorType.MISSING_INITIAL, f"Initial state '{initial}' does not exist", initial=initial
            )
            return None
        return name

    def resolve_target(self, source_id: str, target: str) -> str | None:
        """
        Resolve a transition target relative to its source state.

        "#a.b" is absolute. Otherwise siblings are tried first, then each
        enclosing level up to the root, then children of the source.
        """
        if target.startswith("#"):
            absolute = target[1:]
            return absolute if absolute in self._raw else None

        level = self._raw[source_id].parent
        while True:
            candidate = f"{level}.{target}" if level else target
            if candidate in self._raw:
                return candidate
            if level is None:
                break
            level = self._raw[level].parent

        child = f"{source_id}.{target}"
        return child if child in self._raw else None

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _compile_state(self, raw: _RawState) -> StateNode:
        definition = raw.definition
        state_id = raw.id
        kind = self._state_kind(raw)

        lifecycle = definition.get("lifecycle") or {}
        entry = self._bind_actions(state_id, [*lifecycle.get("onEnter", []), *_as_list(definition.get("entry"))])
        exit_ = self._bind_actions(state_id, [*lifecycle.get("onExit", []), *_as_list(definition.get("exit"))])

        binding = definition.get("binding") or {}
        inputs = self._compile_bindings(state_id, binding.get("inputs", []), "input")
        outputs = self._compile_bindings(state_id, binding.get("outputs", []), "output")

        logic = definition.get("logic") or {}
        computed = self._compile_computed(state_id, logic.get("computed", []))
        validations = self._compile_validations(state_id, logic.get("validations", []))

        transitions: dict[str, list[TransitionCandidate]] = {}
        for event, config in (definition.get("on") or {}).items():
            transitions.setdefault(event, []).extend(self._compile_candidates(state_id, event, config))
        after = self._compile_after(state_id, definition.get("after"), transitions)
        invokes = self._compile_invokes(state_id, definition.get("invoke"), transitions)

        if kind == StateKind.FINAL and (transitions or after or invokes):
            self._error(
                CompileErrorType.INVALID_STATE,
                f"Final state '{state_id}' cannot declare transitions, timers or invokes",
                state_id,
            )

        return StateNode(
            id=state_id,
            key=raw.key,
            kind=kind,
            parent=raw.parent,
            children=tuple(raw.children),
            initial=self._compound_initial(raw, kind),
            meta=copy.deepcopy(definition.get("meta") or {}),
            ui=copy.deepcopy(definition.get("ui")),
            entry=entry,
            exit=exit_,
            input_bindings=inputs,
            output_bindings=outputs,
            computed=computed,
            validations=validations,
            transitions={event: tuple(candidates) for event, candidates in transitions.items()},
            after=after,
            invokes=invokes,
        )

    def _state_kind(self, raw: _RawState) -> StateKind:
        declared = raw.definition.get("type")
        has_children = bool(raw.children)
        if declared is None:
            return StateKind.COMPOUND if has_children else StateKind.ATOMIC

        kind = StateKind(declared)
        if kind != StateKind.COMPOUND and has_children:
            self._error(
                CompileErrorType.INVALID_STATE, f"{kind.value.capitalize()} state '{raw.id}' cannot have child states", raw.id
            )
        if kind == StateKind.COMPOUND and not has_children:
            self._error(CompileErrorType.INVALID_STATE, f"Compound state '{raw.id}' has no child states", raw.id)
        return kind

    def _compound_initial(self, raw: _RawState, kind: StateKind) -> str | None:
        if kind != StateKind.COMPOUND or not raw.children:
            return None

        initial = raw.definition.get("initial")
        if initial is None:
            first = raw.children[0]
            self._warn(
                CompileErrorType.IMPLICIT_INITIAL,
                f"Compound state '{raw.id}' has no initial; using first child '{first}'",
                raw.id,
            )
            return first

        name = str(initial)
        candidate = name[1:] if name.startswith("#") else f"{raw.id}.{name}"
        if candidate not in raw.children:
            self._error(
                CompileErrorType.MISSING_INITIAL,
                f"Initial state '{initial}' is not a child of '{raw.id}'",
                raw.id,
                initial=initial,
            )
            return None
        return candidate

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def _parse_guard(self, state_id: str, ref: Any) -> Guard | None:
        try:
            return GuardParser.parse(ref, self._flow_guards, self.registry)
        except GuardResolutionError as e:
            error_type = CompileErrorType.UNKNOWN_GUARD if e.unknown else CompileErrorType.INVALID_GUARD
            self._error(error_type, str(e), state_id, guard=ref if isinstance(ref, str) else None)
            return None

    def _bind_actions(self, state_id: str, refs: Iterable[Any]) -> tuple[BoundAction, ...]:
        bound: list[BoundAction] = []
        for ref in refs:
            try:
                bound.append(bind_action(ref, self._flow_actions, self.registry))
            except ActionResolutionError as e:
                self._error(CompileErrorType.UNKNOWN_ACTION, str(e), state_id)
        return tuple(bound)

    def _compile_bindings(
        self, state_id: str, bindings: list[Any], direction: Literal["input", "output"]
    ) -> tuple[CompiledBinding, ...]:
        compiled: list[CompiledBinding] = []
        for binding in bindings:
            try:
                compiled.append(parse_binding(binding, self.registry, direction))
            except BindingError as e:
                for problem in e.problems:
                    self._error(CompileErrorType.INVALID_BINDING, f"Invalid {direction} binding: {problem}", state_id)
        return tuple(compiled)

    def _check_expression(self, state_id: str, expression: Any, label: str) -> bool:
        unknown = unknown_operators(expression)
        if unknown:
            self._error(
                CompileErrorType.INVALID_EXPRESSION,
                f"{label} uses unknown operator(s): {', '.join(sorted(unknown))}",
                state_id,
            )
            return False
        return True

    def _compile_computed(self, state_id: str, items: list[Any]) -> tuple[ComputedField, ...]:
        fields: list[ComputedField] = []
        for item in items:
            name = item.get("field")
            try:
                path = context_path(name)
            except ActionResolutionError as e:
                self._error(CompileErrorType.INVALID_EXPRESSION, f"Computed field: {e}", state_id)
                continue
            if self._check_expression(state_id, item.get("expression"), f"Computed field '{name}'"):
                fields.append(ComputedField(field=path, expression=item.get("expression"), cache=bool(item.get("cache"))))
        return tuple(fields)

    def _compile_validations(self, state_id: str, rules: list[Any]) -> BoundAction | None:
        if not rules:
            return None
        valid = all(
            self._check_expression(state_id, rule.get("expression"), f"Validation rule for '{rule.get('field')}'")
            for rule in rules
        )
        if not valid:
            return None
        bound = self._bind_actions(state_id, [{"type": "validateWithRules", "rules": copy.deepcopy(rules)}])
        return bound[0] if bound else None

    # ------------------------------------------------------------------
    # Transitions, timers and invokes
    # ------------------------------------------------------------------

    def _compile_candidates(
        self,
        state_id: str,
        event: str,
        config: Any,
        prefix_actions: tuple[BoundAction, ...] = (),
    ) -> list[TransitionCandidate]:
        candidates: list[TransitionCandidate] = []
        for item in _as_candidates(config):
            if isinstance(item, str):
                item = {"target": item}
            candidates.append(self._compile_candidate(state_id, event, item, prefix_actions))
        return candidates

    def _compile_candidate(
        self,
        state_id: str,
        event: str,
        raw: dict[str, Any],
        prefix_actions: tuple[BoundAction, ...],
    ) -> TransitionCandidate:
        target = raw.get("target")
        resolved = None
        if target is not None:
            resolved = self.resolve_target(state_id, str(target))
            if resolved is None:
                self._error(
                    CompileErrorType.UNKNOWN_TARGET,
                    f"Transition '{event}' targets unknown state '{target}'",
                    state_id,
                    event=event,
                    target=target,
                )

        guard_ref = raw.get("guard", raw.get("cond"))
        guard = self._parse_guard(state_id, guard_ref) if guard_ref is not None else None
        actions = prefix_actions + self._bind_actions(state_id, _as_list(raw.get("actions")))
        return TransitionCandidate(event=event, source=state_id, target=resolved, guard=guard, actions=actions)

    def _compile_after(
        self, state_id: str, after: Any, transitions: dict[str, list[TransitionCandidate]]
    ) -> tuple[AfterTimer, ...]:
        entries: list[tuple[int, Any]] = []
        if isinstance(after, list):
            for item in after:
                entries.append((int(item["delay"]), {k: v for k, v in item.items() if k != "delay"}))
        elif isinstance(after, dict):
            for delay, config in after.items():
                entries.append((int(delay), config))

        timers: list[AfterTimer] = []
        for index, (delay, config) in enumerate(entries):
            event = f"xflows.after.{delay}.{state_id}.{index}"
            transitions.setdefault(event, []).extend(self._compile_candidates(state_id, event, config))
            timers.append(AfterTimer(delay_ms=delay, event=event))
        return tuple(timers)

    def _compile_invokes(
        self, state_id: str, invoke: Any, transitions: dict[str, list[TransitionCandidate]]
    ) -> tuple[InvokeDescriptor, ...]:
        descriptors: list[InvokeDescriptor] = []
        for index, item in enumerate(_as_list(invoke)):
            invoke_id = item.get("id") or f"{state_id}:invoke[{index}]"
            if invoke_id in self._invoke_ids:
                self._error(CompileErrorType.INVALID_STATE, f"Duplicate invoke id '{invoke_id}'", state_id)
            self._invoke_ids.add(invoke_id)

            src = item.get("src")
            actor = self._resolve_actor(state_id, src)
            defaults = self._actor_defaults(src)
            try:
                retry = RetryPolicy.from_definition(item.get("retry") or defaults.get("retry"), self.default_retry)
            except ValueError as e:
                self._error(CompileErrorType.INVALID_STATE, f"Invoke '{invoke_id}': {e}", state_id)
                retry = self.default_retry

            descriptor = InvokeDescriptor(
                id=invoke_id,
                src=src,
                actor=actor,  # type: ignore[arg-type]
                state_id=state_id,
                input=copy.deepcopy(item.get("input", defaults.get("input"))),
                timeout_ms=item.get("timeoutMs"),
                retry=retry,
                cache_key=item.get("cacheKey"),
                cache_ttl_ms=item.get("cacheTtlMs", defaults.get("cacheTtlMs")),
            )

            result_actions = self._result_actions(state_id, item)
            on_done = item.get("onDone")
            done = transitions.setdefault(descriptor.done_event, [])
            if on_done is None:
                if result_actions:
                    done.append(TransitionCandidate(event=descriptor.done_event, source=state_id, actions=result_actions))
            else:
                done.extend(self._compile_candidates(state_id, descriptor.done_event, on_done, result_actions))
            if not done:
                del transitions[descriptor.done_event]

            on_error = item.get("onError")
            if on_error is None:
                self._warn(
                    CompileErrorType.INVOKE_WITHOUT_ON_ERROR,
                    f"Invoke '{invoke_id}' has no onError handler; failures will be ignored",
                    state_id,
                )
            else:
                transitions.setdefault(descriptor.error_event, []).extend(
                    self._compile_candidates(state_id, descriptor.error_event, on_error)
                )

            if actor is not None:
                descriptors.append(descriptor)
        return tuple(descriptors)

    def _result_actions(self, state_id: str, invoke: dict[str, Any]) -> tuple[BoundAction, ...]:
        refs: list[dict[str, Any]] = []
        if invoke.get("mapResult"):
            refs.append({"type": "mapResult", "mapping": dict(invoke["mapResult"])})
        if invoke.get("assignTo"):
            refs.append({"type": "assignResult", "target": invoke["assignTo"]})
        return self._bind_actions(state_id, refs)

    def _actor_defaults(self, src: Any) -> dict[str, Any]:
        """Invoke defaults (input, retry, cacheTtlMs) declared on a flow-level actor."""
        actors = self.definition.get("actors") or {}
        definition = actors.get(src) if isinstance(src, str) else None
        return definition if isinstance(definition, dict) else {}

    def _build_flow_actors(self, actors: Mapping[str, Any]) -> None:
        for name, definition in actors.items():
            try:
                self._flow_actors[name] = self.registry.create_actor(name, definition)
            except ActorResolutionError as e:
                self._failed_actors.add(name)
                self._error(CompileErrorType.UNKNOWN_ACTOR, str(e), actor=name)

    def _resolve_actor(self, state_id: str, src: Any) -> BaseActor | None:
        if src in self._flow_actors:
            return self._flow_actors[src]
        if src in self._failed_actors:
            return None  # Already reported
        actor = self.registry.get_actor(src) if isinstance(src, str) else None
        if actor is None:
            self._error(CompileErrorType.UNKNOWN_ACTOR, f"Unknown actor '{src}'", state_id, actor=src)
        return actor

    # ------------------------------------------------------------------
    # Provided-path analysis
    # ------------------------------------------------------------------

    def _provided_paths(self, graph: CompiledGraph) -> set[str]:
        provided = {f"context.{path}" for path in flatten_paths(graph.context)}
        for node in graph.states.values():
            actions = [*node.entry, *node.exit]
            if node.validations is not None:
                actions.append(node.validations)
            for candidate in node.candidates:
                actions.extend(candidate.actions)
            for action in actions:
                provided.update(action.writes)
            provided.update(binding.target for binding in node.input_bindings)
            provided.update(f"context.{computed.field}" for computed in node.computed)
        return provided

    def _check_provided_paths(self, graph: CompiledGraph) -> None:
        provided = self._provided_paths(graph)
        reported: set[tuple[str, str]] = set()

        for node in graph.states.values():
            for candidate in node.candidates:
                if candidate.guard is None:
                    continue
                for path in sorted(candidate.guard.reads):
                    if not path.startswith("context.") or _is_provided(path, provided):
                        continue
                    if (node.id, path) in reported:
                        continue
                    reported.add((node.id, path))
                    self._warn(
                        CompileErrorType.UNPROVIDED_PATH,
                        f"Guard '{candidate.guard.name}' reads '{path}', which nothing provides",
                        node.id,
                        path=path,
                    )

            for label, template in self._templates(node):
                requirements = self.registry.renderer.validate_requirements(template, provided)
                for variable in requirements.missing:
                    message = f"{label} uses '{variable}', which nothing provides"
                    if self.config.strict_templates:
                        self._error(CompileErrorType.MISSING_TEMPLATE_VARIABLE, message, node.id, variable=variable)
                    else:
                        self._warn(CompileErrorType.MISSING_TEMPLATE_VARIABLE, message, node.id, variable=variable)

    def _templates(self, node: StateNode) -> list[tuple[str, str]]:
        templates: list[tuple[str, str]] = []
        actions = [*node.entry, *node.exit]
        for candidate in node.candidates:
            actions.extend(candidate.actions)
        for action in actions:
            if action.name == "renderTemplateInto":
                templates.append((f"Template of '{action.name}'", str(action.params["template"])))
            elif action.name == "log" and isinstance(action.params.get("message"), str):
                templates.append(("Log message", action.params["message"]))

        for invoke in node.invokes:
            if invoke.cache_key:
                templates.append((f"Cache key of invoke '{invoke.id}'", invoke.cache_key))
            if isinstance(invoke.actor, HttpActor) and isinstance(invoke.actor.config.get("url"), str):
                templates.append((f"URL of invoke '{invoke.id}'", invoke.actor.config["url"]))
        return templates


def compile_flow(
    definition: FlowDefinition | dict[str, Any],
    registry: Registry | None = None,
    config: RuntimeConfig | None = None,
) -> CompiledGraph:
    """
    Compile a flow definition into an immutable graph.

    Raises:
        FlowCompileError: With every fatal issue found in the definition
    """
    return FlowCompiler(definition, registry, config).compile()


def validate_flow(
    definition: FlowDefinition | dict[str, Any],
    registry: Registry | None = None,
    config: RuntimeConfig | None = None,
) -> ValidationResult:
    """Check a flow definition and report errors and warnings without raising."""
    return FlowCompiler(definition, registry, config).validate()
