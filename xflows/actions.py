"""Actions: synchronous context transformations.

An action is a pure function `fn(context, event, params) -> context` that
returns a new context and leaves its input untouched. The runtime assigns the
returned value; nothing else mutates a flow's context.

Action references in flow files come in three forms:

    "assignField:field:session.user"             # shorthand, key/value pairs
    "log:Session initialization started"         # shorthand, single rest argument
    {"type": "renderTemplateInto", "target": "greeting", "template": "Hi {{context.name}}"}

or the name of an entry in the flow's `actions` section that holds one of
those forms. References are bound once at compile time into BoundAction
objects.
"""

import itertools
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from xflows.guards import parse_literal
from xflows.logic import evaluate, evaluate_bool
from xflows.models import ActionRef, EvaluationError
from xflows.paths import delete_path, get_path, resolve_scoped, set_path, split_scope
from xflows.templates import TemplateRenderer

if TYPE_CHECKING:
    from xflows.registry import Registry

logger = logging.getLogger(__name__)

ActionFn = Callable[[Any, Any, Mapping[str, Any]], Any]


class ActionResolutionError(ValueError):
    """An action reference could not be resolved."""


@dataclass(frozen=True)
class ActionSpec:
    """A registered action.

    Attributes:
        name: Registry name
        fn: The action function
        reads: Scoped paths the action always reads
        writes: Scoped paths the action always writes
        read_params: Parameters whose values are paths the action reads
        write_params: Parameters whose values are paths the action writes
        positional: Parameter filled by a single shorthand argument
        shorthand: "pairs" parses "key:value" tokens, "rest" passes the whole
            remainder to the positional parameter
    """

    name: str
    fn: ActionFn
    reads: tuple[str, ...] = ()
    writes: tuple[str, ...] = ()
    read_params: tuple[str, ...] = ()
    write_params: tuple[str, ...] = ()
    positional: str | None = None
    shorthand: Literal["pairs", "rest"] = "pairs"


@dataclass(frozen=True)
class BoundAction:
    """An action resolved at compile time with its parameters."""

    name: str
    fn: ActionFn
    params: dict[str, Any] = field(default_factory=dict, hash=False)
    reads: frozenset[str] = frozenset()
    writes: frozenset[str] = frozenset()

    def __call__(self, context: Any, event: Any = None) -> Any:
        result = self.fn(context, event, self.params)
        return context if result is None else result


# ============================================================================
# Helpers
# ============================================================================


def context_path(path: Any) -> str:
    """Normalize a write target: 'context.user.name' and 'user.name' are the same field."""
    scope, rest = split_scope(str(path))
    if scope != "context":
        raise ActionResolutionError(f"Actions can only write context paths, got '{path}'")
    return rest


def _qualified(path: Any) -> str:
    scope, rest = split_scope(str(path))
    return f"{scope}.{rest}" if rest else scope


def _event_value(event: Any) -> Any:
    if isinstance(event, Mapping):
        if "data" in event:
            return event["data"]
        return event.get("payload")
    return None


def extract_json_path(data: Any, json_path: str) -> Any:
    """
    Extract a value from an actor result with a minimal JSONPath.

    Examples:
        "$" → the whole result
        "$.user.id" → data["user"]["id"]
        "$.items[0]" → data["items"][0]
        "user.id" → same as "$.user.id"
    """
    path = json_path.strip()
    if path == "$":
        return data
    if path.startswith("$."):
        path = path[2:]
    elif path.startswith("$["):
        path = path[1:]
    return get_path(data, path)


# ============================================================================
# Built-in actions
# ============================================================================


def builtin_actions(renderer: TemplateRenderer) -> dict[str, ActionSpec]:
    """Create the built-in action set bound to a renderer."""
    sequence = itertools.count(1)

    def value_for(params: Mapping[str, Any], context: Any, event: Any) -> Any:
        if "value" in params:
            return renderer.render_value(params["value"], context, event)
        if "from" in params:
            return resolve_scoped(str(params["from"]), context, event)
        return _event_value(event)

    def assign_field(context: Any, event: Any, params: Mapping[str, Any]) -> Any:
        return set_path(context, context_path(params["field"]), value_for(params, context, event))

    def copy_field(context: Any, event: Any, params: Mapping[str, Any]) -> Any:
        value = resolve_scoped(str(params["from"]), context, event)
        return set_path(context, context_path(params["to"]), value)

    def clear_field(context: Any, event: Any, params: Mapping[str, Any]) -> Any:
        if params.get("remove"):
            return delete_path(context, context_path(params["field"]))
        return set_path(context, context_path(params["field"]), None)

    def accumulate_array(context: Any, event: Any, params: Mapping[str, Any]) -> Any:
        path = context_path(params["field"])
        current = get_path(context, path)
        items = list(current) if isinstance(current, list) else ([] if current is None else [current])
        items.append(value_for(params, context, event))
        return set_path(context, path, items)

    def generate_id(context: Any, event: Any, params: Mapping[str, Any]) -> Any:
        prefix = params.get("prefix", "id")
        identifier = f"{prefix}-{int(time.time() * 1000)}-{next(sequence)}"
        return set_path(context, context_path(params.get("field", "id")), identifier)

    def log(context: Any, event: Any, params: Mapping[str, Any]) -> Any:
        message = renderer.render(str(params.get("message", "")), context, event)
        logger.info(message)
        return context

    def render_template_into(context: Any, event: Any, params: Mapping[str, Any]) -> Any:
        text = renderer.render(str(params["template"]), context, event)
        return set_path(context, context_path(params["target"]), text)

    def evaluate_expression_into(context: Any, event: Any, params: Mapping[str, Any]) -> Any:
        try:
            value = evaluate(params["expression"], context, event)
        except EvaluationError as e:
            logger.warning(f"evaluateExpressionInto '{params['target']}' failed, storing null: {e}")
            value = None
        return set_path(context, context_path(params["target"]), value)

    def validate_with_rules(context: Any, event: Any, params: Mapping[str, Any]) -> Any:
        failures: list[str] = []
        for rule in params.get("rules", []):
            field_name = rule.get("field", "")
            message = rule.get("message", "is invalid")
            try:
                passed = evaluate_bool(rule["expression"], context, event)
            except EvaluationError as e:
                logger.warning(f"Validation rule for '{field_name}' could not be evaluated: {e}")
                passed = False
            if not passed:
                failures.append(f"{field_name}: {message}")

        if not failures:
            return context
        current = get_path(context, "errors")
        errors = list(current) if isinstance(current, list) else []
        return set_path(context, "errors", errors + failures)

    def map_result(context: Any, event: Any, params: Mapping[str, Any]) -> Any:
        data = _event_value(event)
        result = context
        for target, json_path in params.get("mapping", {}).items():
            result = set_path(result, context_path(target), extract_json_path(data, str(json_path)))
        return result

    def assign_result(context: Any, event: Any, params: Mapping[str, Any]) -> Any:
        return set_path(context, context_path(params["target"]), _event_value(event))

    return {
        "assignField": ActionSpec("assignField", assign_field, read_params=("from",), write_params=("field",), positional="field"),
        "copyField": ActionSpec("copyField", copy_field, read_params=("from",), write_params=("to",)),
        "clearField": ActionSpec("clearField", clear_field, write_params=("field",), positional="field"),
        "accumulateArray": ActionSpec("accumulateArray", accumulate_array, read_params=("from",), write_params=("field",), positional="field"),
        "generateId": ActionSpec("generateId", generate_id, write_params=("field",), positional="field"),
        "log": ActionSpec("log", log, positional="message", shorthand="rest"),
        "renderTemplateInto": ActionSpec("renderTemplateInto", render_template_into, write_params=("target",)),
        "evaluateExpressionInto": ActionSpec("evaluateExpressionInto", evaluate_expression_into, write_params=("target",)),
        "validateWithRules": ActionSpec("validateWithRules", validate_with_rules, writes=("context.errors",)),
        "mapResult": ActionSpec("mapResult", map_result, write_params=("mapping",)),
        "assignResult": ActionSpec("assignResult", assign_result, write_params=("target",), positional="target"),
    }


# Parameters each built-in needs before it can run
REQUIRED_PARAMS: dict[str, tuple[str, ...]] = {
    "assignField": ("field",),
    "copyField": ("from", "to"),
    "clearField": ("field",),
    "accumulateArray": ("field",),
    "renderTemplateInto": ("target", "template"),
    "evaluateExpressionInto": ("target", "expression"),
    "validateWithRules": ("rules",),
    "mapResult": ("mapping",),
    "assignResult": ("target",),
}


# ============================================================================
# Binding
# ============================================================================


def parse_action_shorthand(ref: str, spec: ActionSpec) -> dict[str, Any]:
    """
    Parse the parameter part of a shorthand reference.

    Examples:
        "assignField:field:user:value:42" → {"field": "user", "value": 42}
        "clearField:session.token" → {"field": "session.token"}
        "log:Step: done" → {"message": "Step: done"}
    """
    _, _, remainder = ref.partition(":")
    if not remainder:
        return {}

    if spec.shorthand == "rest":
        return {spec.positional or "value": remainder}

    tokens = remainder.split(":")
    if len(tokens) == 1:
        if spec.positional is None:
            raise ActionResolutionError(f"Action '{spec.name}' does not accept a positional argument: '{ref}'")
        return {spec.positional: tokens[0]}
    if len(tokens) % 2:
        raise ActionResolutionError(f"Action shorthand '{ref}' must use key:value pairs")
    return {tokens[i]: parse_literal(tokens[i + 1]) for i in range(0, len(tokens), 2)}


def bind_action(
    ref: ActionRef,
    flow_actions: Mapping[str, ActionRef] | None,
    registry: "Registry",
) -> BoundAction:
    """
    Resolve an action reference into a BoundAction.

    Raises:
        ActionResolutionError: If the action is unknown or its parameters are invalid
    """
    return _bind(ref, flow_actions or {}, registry, seen=())


def _bind(
    ref: ActionRef,
    flow_actions: Mapping[str, ActionRef],
    registry: "Registry",
    seen: tuple[str, ...],
) -> BoundAction:
    if isinstance(ref, dict):
        name = ref.get("type")
        if not isinstance(name, str):
            raise ActionResolutionError(f"Action object is missing 'type': {ref!r}")
        spec = _lookup(name, registry)
        params = {key: value for key, value in ref.items() if key != "type"}
        return _make_bound(spec, params)

    if not isinstance(ref, str) or not ref.strip():
        raise ActionResolutionError(f"Invalid action reference: {ref!r}")

    ref = ref.strip()
    if ref in flow_actions:
        if ref in seen:
            raise ActionResolutionError(f"Action '{ref}' refers to itself")
        return _bind(flow_actions[ref], flow_actions, registry, seen + (ref,))

    name = ref.partition(":")[0]
    spec = _lookup(name, registry)
    return _make_bound(spec, parse_action_shorthand(ref, spec))


def _lookup(name: str, registry: "Registry") -> ActionSpec:
    spec = registry.get_action(name)
    if spec is None:
        raise ActionResolutionError(f"Unknown action '{name}'")
    return spec


def _make_bound(spec: ActionSpec, params: dict[str, Any]) -> BoundAction:
    missing = [p for p in REQUIRED_PARAMS.get(spec.name, ()) if p not in params]
    if missing:
        raise ActionResolutionError(f"Action '{spec.name}' is missing parameter(s): {', '.join(missing)}")

    writes = {_qualified(path) for path in spec.writes}
    for param in spec.write_params:
        value = params.get(param)
        if isinstance(value, dict):
            writes.update(_qualified(key) for key in value)
        elif isinstance(value, str):
            writes.add(_qualified(value))
    if spec.name == "generateId" and "field" not in params:
        writes.add("context.id")

    reads = {_qualified(path) for path in spec.reads}
    for param in spec.read_params:
        value = params.get(param)
        if isinstance(value, str):
            reads.add(_qualified(value))

    for path in writes:
        if not path.startswith("context."):
            raise ActionResolutionError(f"Action '{spec.name}' cannot write '{path}'")

    return BoundAction(
        name=spec.name,
        fn=spec.fn,
        params=params,
        reads=frozenset(reads),
        writes=frozenset(writes),
    )
