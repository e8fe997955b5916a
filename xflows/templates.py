"""Template rendering for xflows.

Templates are plain strings with embedded expressions:

    "Hello {{ context.user.name | uppercase }}"
    "Total: <%= context.order.total | currency:EUR %>"
    "{{ {\"if\": [{\">\": [{\"var\": \"score\"}, 50]}, \"high\", \"low\"]} }}"
    "{{ length(context.items) }} items"

An expression is a dot path (resolved like the evaluator's `var`), a quoted
literal, a helper call, or an inline JSON-Logic object, optionally followed
by `| filter` or `| filter:arg` stages.

Unresolved values render as an empty string. Any failure (malformed
expression, unknown filter, evaluation error) turns the whole result into
"ERROR: <reason>" instead of raising, because templates feed user-facing
text.
"""

import json
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from xflows.logic import collect_vars, evaluate
from xflows.models import EvaluationError
from xflows.paths import split_scope

logger = logging.getLogger(__name__)

FilterFn = Callable[[Any, str | None], Any]

_PATH_PATTERN = re.compile(r"^[A-Za-z_$][\w$]*(?:\.[\w$]+|\[\d+\]|\['[^']*'\]|\[\"[^\"]*\"\])*$")
_HELPER_PATTERN = re.compile(r"^([A-Za-z_]\w*)\((.*)\)$")

_CURRENCY_SYMBOLS = {
    "USD": "$",
    "MXN": "$",
    "CAD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}


# ============================================================================
# Filters
# ============================================================================


def _filter_uppercase(value: Any, arg: str | None) -> Any:
    return None if value is None else stringify(value).upper()


def _filter_lowercase(value: Any, arg: str | None) -> Any:
    return None if value is None else stringify(value).lower()


def _filter_trim(value: Any, arg: str | None) -> Any:
    return None if value is None else stringify(value).strip()


def _filter_currency(value: Any, arg: str | None) -> Any:
    if value is None or value == "":
        return ""
    try:
        amount = float(value)
    except (TypeError, ValueError) as e:
        raise EvaluationError(f"currency filter expects a number, got {value!r}") from e

    code = (arg or "USD").upper()
    formatted = f"{abs(amount):,.2f}"
    sign = "-" if amount < 0 else ""
    symbol = _CURRENCY_SYMBOLS.get(code)
    if symbol is None:
        return f"{sign}{code} {formatted}"
    return f"{sign}{symbol}{formatted}"


def _filter_date(value: Any, arg: str | None) -> Any:
    if value is None or value == "":
        return ""
    fmt = arg or "%Y-%m-%d"

    if isinstance(value, datetime | date):
        moment = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # Millisecond timestamps are the common case for values produced by hosts
        seconds = value / 1000 if abs(value) > 1e11 else value
        moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str):
        try:
            moment = datetime.fromisoformat(value.strip())
        except ValueError as e:
            raise EvaluationError(f"date filter cannot parse {value!r}") from e
    else:
        raise EvaluationError(f"date filter cannot format {type(value).__name__}")

    return moment.strftime(fmt)


def _filter_json(value: Any, arg: str | None) -> Any:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def _filter_default(value: Any, arg: str | None) -> Any:
    if value is None or value == "":
        return arg if arg is not None else ""
    return value


DEFAULT_FILTERS: dict[str, FilterFn] = {
    "uppercase": _filter_uppercase,
    "lowercase": _filter_lowercase,
    "trim": _filter_trim,
    "currency": _filter_currency,
    "date": _filter_date,
    "json": _filter_json,
    "default": _filter_default,
}


# ============================================================================
# Helpers
# ============================================================================


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _length(value: Any) -> int:
    if isinstance(value, (str, list, dict)):
        return len(value)
    return 0


HELPERS: dict[str, Callable[[Any], Any]] = {
    "isEmpty": _is_empty,
    "hasValue": lambda value: not _is_empty(value),
    "length": _length,
}


def stringify(value: Any) -> str:
    """Render a value the way it appears inside template output."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


# ============================================================================
# Parsing
# ============================================================================


@dataclass(frozen=True)
class _Segment:
    text: str
    is_expression: bool


def _scan(template: str) -> list[_Segment]:
    """Split a template into literal and expression segments."""
    segments: list[_Segment] = []
    literal = ""
    i = 0

    while i < len(template):
        if template.startswith("{{", i):
            expression, end = _scan_braces(template, i + 2)
        elif template.startswith("<%=", i):
            end_index = template.find("%>", i + 3)
            if end_index == -1:
                raise EvaluationError(f"Unclosed '<%=' at position {i}")
            expression, end = template[i + 3:end_index], end_index + 2
        else:
            literal += template[i]
            i += 1
            continue

        if literal:
            segments.append(_Segment(literal, False))
            literal = ""
        segments.append(_Segment(expression.strip(), True))
        i = end

    if literal:
        segments.append(_Segment(literal, False))
    return segments


def _scan_braces(template: str, start: int) -> tuple[str, int]:
    """Find the closing '}}' of an expression, skipping nested JSON braces."""
    depth = 0
    quote: str | None = None
    i = start

    while i < len(template):
        char = template[i]
        if quote:
            if char == "\\":
                i += 2
                continue
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "{":
            depth += 1
        elif char == "}":
            if depth == 0 and template.startswith("}}", i):
                return template[start:i], i + 2
            depth -= 1
        i += 1

    raise EvaluationError(f"Unclosed '{{{{' at position {start - 2}")


def _split_pipeline(expression: str) -> list[str]:
    """Split on '|' outside quotes and braces."""
    parts: list[str] = []
    current = ""
    depth = 0
    quote: str | None = None

    for char in expression:
        if quote:
            current += char
            if char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
        elif char == "|" and depth == 0:
            parts.append(current.strip())
            current = ""
            continue
        current += char

    parts.append(current.strip())
    return parts


def _unquote(text: str) -> str | None:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return None


@dataclass(frozen=True)
class TemplateRequirements:
    """Outcome of a template requirements check."""

    missing: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.missing

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "missing": list(self.missing)}


def _qualify(path: str) -> str:
    scope, rest = split_scope(path)
    return f"{scope}.{rest}" if rest else scope


class TemplateRenderer:
    """Renders delimiter templates against a context and event.

    Filters can be extended per renderer, which keeps registries independent:

        renderer = TemplateRenderer()
        renderer.register_filter("initials", lambda v, arg: "".join(w[0] for w in str(v).split()))
    """

    def __init__(self, filters: dict[str, FilterFn] | None = None):
        self._filters: dict[str, FilterFn] = dict(DEFAULT_FILTERS)
        if filters:
            self._filters.update(filters)

    @property
    def filters(self) -> frozenset[str]:
        return frozenset(self._filters)

    def register_filter(self, name: str, fn: FilterFn) -> None:
        self._filters[name] = fn

    def render(self, template: str, context: Any, event: Any = None) -> str:
        """Render a template; failures return "ERROR: <reason>"."""
        try:
            return "".join(
                stringify(self._evaluate_expression(segment.text, context, event))
                if segment.is_expression
                else segment.text
                for segment in _scan(template)
            )
        except EvaluationError as e:
            logger.warning(f"Template render failed for {template!r}: {e}")
            return f"ERROR: {e}"

    def evaluate_template(self, template: str, context: Any, event: Any = None) -> Any:
        """Render a template, keeping the raw value when the template is a single expression.

        "{{ context.amount }}" yields the number itself rather than its string
        form, which matters for request bodies and actor inputs.

        Raises:
            EvaluationError: If the template is malformed
        """
        segments = _scan(template)
        if len(segments) == 1 and segments[0].is_expression:
            return self._evaluate_expression(segments[0].text, context, event)
        return "".join(
            stringify(self._evaluate_expression(s.text, context, event)) if s.is_expression else s.text
            for s in segments
        )

    def render_value(self, value: Any, context: Any, event: Any = None) -> Any:
        """Recursively render every string leaf of a JSON value.

        Raises:
            EvaluationError: If any template is malformed
        """
        if isinstance(value, str):
            return self.evaluate_template(value, context, event)
        if isinstance(value, list):
            return [self.render_value(item, context, event) for item in value]
        if isinstance(value, dict):
            return {key: self.render_value(item, context, event) for key, item in value.items()}
        return value

    def extract_variables(self, template: str) -> list[str]:
        """List every variable path a template reads, in order of appearance.

        Raises:
            EvaluationError: If the template cannot be scanned
        """
        variables: list[str] = []
        for segment in _scan(template):
            if not segment.is_expression:
                continue
            head = _split_pipeline(segment.text)[0]
            for path in self._head_variables(head):
                if path not in variables:
                    variables.append(path)
        return variables

    def validate_requirements(self, template: str, available_keys: Iterable[str]) -> TemplateRequirements:
        """Check which template variables are not covered by `available_keys`.

        A variable is covered when it equals an available key, lies below one
        (the key holds an opaque object), or is an ancestor of one. Event
        variables are always covered since events only exist at runtime.
        """
        available = {_qualify(key) for key in available_keys}
        missing: list[str] = []
        try:
            variables = self.extract_variables(template)
        except EvaluationError as e:
            return TemplateRequirements(missing=[f"ERROR: {e}"])

        for variable in variables:
            qualified = _qualify(variable)
            if qualified == "event" or qualified.startswith("event."):
                continue
            if any(
                qualified == key or qualified.startswith(f"{key}.") or key.startswith(f"{qualified}.")
                for key in available
            ):
                continue
            missing.append(variable)

        return TemplateRequirements(missing=missing)

    # ------------------------------------------------------------------
    # Expression evaluation
    # ------------------------------------------------------------------

    def _evaluate_expression(self, expression: str, context: Any, event: Any) -> Any:
        if not expression:
            raise EvaluationError("Empty template expression")

        head, *stages = _split_pipeline(expression)
        value = self._evaluate_head(head, context, event)

        for stage in stages:
            name, _, raw_arg = stage.partition(":")
            name = name.strip()
            filter_fn = self._filters.get(name)
            if filter_fn is None:
                raise EvaluationError(f"Unknown filter '{name}'")
            arg = None
            if raw_arg:
                raw_arg = raw_arg.strip()
                unquoted = _unquote(raw_arg)
                arg = unquoted if unquoted is not None else raw_arg
            value = filter_fn(value, arg)

        return value

    def _evaluate_head(self, head: str, context: Any, event: Any) -> Any:
        if head.startswith("{") or head.startswith("["):
            try:
                expr = json.loads(head)
            except json.JSONDecodeError as e:
                raise EvaluationError(f"Invalid inline expression: {e.msg}") from e
            return evaluate(expr, context, event)

        literal = _unquote(head)
        if literal is not None:
            return literal

        helper = _HELPER_PATTERN.match(head)
        if helper:
            name, argument = helper.group(1), helper.group(2).strip()
            fn = HELPERS.get(name)
            if fn is None:
                raise EvaluationError(f"Unknown template helper '{name}'")
            return fn(self._resolve_path(argument, context, event))

        return self._resolve_path(head, context, event)

    def _resolve_path(self, path: str, context: Any, event: Any) -> Any:
        if not _PATH_PATTERN.match(path):
            raise EvaluationError(f"Malformed expression '{path}'")
        return evaluate({"var": path}, context, event)

    def _head_variables(self, head: str) -> list[str]:
        if head.startswith("{") or head.startswith("["):
            try:
                return sorted(collect_vars(json.loads(head)))
            except json.JSONDecodeError as e:
                raise EvaluationError(f"Invalid inline expression: {e.msg}") from e
        if _unquote(head) is not None:
            return []
        helper = _HELPER_PATTERN.match(head)
        if helper:
            return [helper.group(2).strip()]
        return [head]


def render(template: str, context: Any, event: Any = None) -> str:
    """Render with the default filter set."""
    return _DEFAULT_RENDERER.render(template, context, event)


def validate_requirements(template: str, available_keys: Iterable[str]) -> TemplateRequirements:
    return _DEFAULT_RENDERER.validate_requirements(template, available_keys)


_DEFAULT_RENDERER = TemplateRenderer()
