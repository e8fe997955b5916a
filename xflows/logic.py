"""Expression evaluation for xflows.

Expressions are JSON-Logic operator trees: a dict with exactly one key naming
the operator, whose value is the argument list (a single non-list argument is
accepted as a one-element list). Everything that is not such a dict is a
literal, and lists are evaluated element-wise.

    {"and": [
        {">=": [{"var": "context.applicant.age"}, 18]},
        {"in": [{"var": "event.data.plan"}, ["basic", "premium"]]}
    ]}

Variables resolve against the flow scope: `context.<path>` and
`event.<path>` address the context and the current event explicitly, any
other path is looked up in the context. Inside `map`/`filter`/`some`/`all`
the data is the current element and paths resolve against it.

Evaluation is pure. Unknown operators and malformed trees raise
EvaluationError; callers decide how to degrade.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from xflows.models import EvaluationError
from xflows.paths import get_path, split_scope


@dataclass(frozen=True)
class Scope:
    """Top-level evaluation data: the flow context plus the current event."""

    context: Any
    event: Any = None

    def lookup(self, path: str, default: Any = None) -> Any:
        scope, rest = split_scope(path)
        source = self.event if scope == "event" else self.context
        return get_path(source, rest, default)


def is_truthy(value: Any) -> bool:
    """JSON-Logic truthiness: 0, "", [], null and false are false."""
    if isinstance(value, dict):
        return True
    return bool(value)


def evaluate(expr: Any, context: Any, event: Any = None) -> Any:
    """Evaluate an expression against a context and optional event.

    Raises:
        EvaluationError: Malformed tree, unknown operator or invalid operands
    """
    try:
        return _evaluate(expr, Scope(context=context, event=event))
    except EvaluationError:
        raise
    except (TypeError, ValueError, OverflowError, ZeroDivisionError) as e:
        raise EvaluationError(f"Invalid expression {expr!r}: {e}") from e


def evaluate_bool(expr: Any, context: Any, event: Any = None) -> bool:
    """Evaluate an expression and coerce the result through truthiness."""
    return is_truthy(evaluate(expr, context, event))


def is_logic(value: Any) -> bool:
    """Whether `value` looks like an operator node."""
    return isinstance(value, dict) and len(value) == 1 and next(iter(value)) in OPERATORS


def _evaluate(expr: Any, data: Any) -> Any:
    if isinstance(expr, list):
        return [_evaluate(item, data) for item in expr]
    if not isinstance(expr, dict):
        return expr
    if len(expr) != 1:
        raise EvaluationError(
            f"Malformed expression: expected a single operator, got keys {sorted(expr)}"
        )

    operator, args = next(iter(expr.items()))
    if operator in _LAZY_OPERATORS:
        return _LAZY_OPERATORS[operator](_as_list(args), data)

    handler = _OPERATORS.get(operator)
    if handler is None:
        raise EvaluationError(f"Unknown operator: '{operator}'")
    values = [_evaluate(arg, data) for arg in _as_list(args)]
    return handler(*values)


def _as_list(args: Any) -> list[Any]:
    return args if isinstance(args, list) else [args]


# ============================================================================
# Coercion helpers
# ============================================================================


def _to_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return 0
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            pass
    raise EvaluationError(f"Cannot use {value!r} as a number")


def _numeric_or_none(value: Any) -> int | float | None:
    try:
        number = _to_number(value)
    except EvaluationError:
        return None
    if isinstance(number, float) and math.isnan(number):
        return None
    return number


def _normalize(number: int | float) -> int | float:
    if isinstance(number, float) and number.is_integer() and abs(number) < 2**53:
        return int(number)
    return number


# ============================================================================
# Comparison
# ============================================================================


def _loose_equals(a: Any, b: Any) -> bool:
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, (int, float, bool)) or isinstance(b, (int, float, bool)):
        left, right = _numeric_or_none(a), _numeric_or_none(b)
        if left is not None and right is not None:
            return left == right
    return a == b


def _strict_equals(a: Any, b: Any) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return type(a) is type(b) and a == b or (
        isinstance(a, (int, float)) and isinstance(b, (int, float)) and a == b
    )


def _compare(op: Callable[[Any, Any], bool], a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return op(a, b)
    left, right = _numeric_or_none(a), _numeric_or_none(b)
    if left is None or right is None:
        return False
    return op(left, right)


def _less_than(*args: Any) -> bool:
    if len(args) == 3:
        return _compare(lambda x, y: x < y, args[0], args[1]) and _compare(
            lambda x, y: x < y, args[1], args[2]
        )
    return _compare(lambda x, y: x < y, *_pair(args))


def _less_equal(*args: Any) -> bool:
    if len(args) == 3:
        return _compare(lambda x, y: x <= y, args[0], args[1]) and _compare(
            lambda x, y: x <= y, args[1], args[2]
        )
    return _compare(lambda x, y: x <= y, *_pair(args))


def _pair(args: tuple[Any, ...]) -> tuple[Any, Any]:
    if len(args) != 2:
        raise EvaluationError(f"Comparison expects 2 arguments, got {len(args)}")
    return args[0], args[1]


# ============================================================================
# Arithmetic
# ============================================================================


def _add(*args: Any) -> int | float:
    return _normalize(sum(_to_number(a) for a in args))


def _subtract(*args: Any) -> int | float:
    if len(args) == 1:
        return _normalize(-_to_number(args[0]))
    a, b = _pair(args)
    return _normalize(_to_number(a) - _to_number(b))


def _multiply(*args: Any) -> int | float:
    if not args:
        raise EvaluationError("'*' expects at least one argument")
    result: int | float = 1
    for a in args:
        result *= _to_number(a)
    return _normalize(result)


def _divide(*args: Any) -> int | float:
    a, b = _pair(args)
    divisor = _to_number(b)
    if divisor == 0:
        raise EvaluationError("Division by zero")
    return _normalize(_to_number(a) / divisor)


def _modulo(*args: Any) -> int | float:
    a, b = _pair(args)
    divisor = _to_number(b)
    if divisor == 0:
        raise EvaluationError("Modulo by zero")
    return _normalize(math.fmod(_to_number(a), divisor))


# ============================================================================
# Collections and strings
# ============================================================================


def _in(*args: Any) -> bool:
    needle, haystack = _pair(args)
    if isinstance(haystack, str):
        return str(needle) in haystack
    if isinstance(haystack, list):
        return any(_loose_equals(needle, item) for item in haystack)
    if isinstance(haystack, dict):
        return needle in haystack
    return False


def _length(*args: Any) -> int:
    if len(args) != 1:
        raise EvaluationError(f"'length' expects 1 argument, got {len(args)}")
    value = args[0]
    if value is None:
        return 0
    if isinstance(value, (str, list, dict)):
        return len(value)
    raise EvaluationError(f"'length' is not defined for {type(value).__name__}")


def _cat(*args: Any) -> str:
    return "".join(_stringify(a) for a in args)


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _min(*args: Any) -> int | float | None:
    numbers = [_to_number(a) for a in args]
    return min(numbers) if numbers else None


def _max(*args: Any) -> int | float | None:
    numbers = [_to_number(a) for a in args]
    return max(numbers) if numbers else None


def _merge(*args: Any) -> list[Any]:
    merged: list[Any] = []
    for a in args:
        merged.extend(a if isinstance(a, list) else [a])
    return merged


def _missing(data: Any) -> Callable[..., list[str]]:
    def check(*paths: Any) -> list[str]:
        if len(paths) == 1 and isinstance(paths[0], list):
            paths = tuple(paths[0])
        return [p for p in paths if _lookup(data, str(p), None) in (None, "")]

    return check


def _lookup(data: Any, path: str, default: Any) -> Any:
    try:
        if isinstance(data, Scope):
            return data.lookup(path, default)
        return get_path(data, path, default)
    except ValueError as e:
        raise EvaluationError(f"Invalid variable path '{path}': {e}") from e


# ============================================================================
# Lazy operators (control their own argument evaluation)
# ============================================================================


def _op_var(args: list[Any], data: Any) -> Any:
    if not args:
        return data.context if isinstance(data, Scope) else data
    path = _evaluate(args[0], data)
    default = _evaluate(args[1], data) if len(args) > 1 else None
    if path is None or path == "":
        return data.context if isinstance(data, Scope) else data
    if isinstance(path, (int, float)) and not isinstance(path, bool):
        path = str(int(path))
    if not isinstance(path, str):
        raise EvaluationError(f"'var' path must be a string, got {type(path).__name__}")
    value = _lookup(data, path, None)
    return default if value is None else value


def _op_missing(args: list[Any], data: Any) -> list[str]:
    return _missing(data)(*[_evaluate(a, data) for a in args])


def _op_if(args: list[Any], data: Any) -> Any:
    # [cond, then, cond, then, ..., else]
    index = 0
    while index + 1 < len(args):
        if is_truthy(_evaluate(args[index], data)):
            return _evaluate(args[index + 1], data)
        index += 2
    if index < len(args):
        return _evaluate(args[index], data)
    return None


def _op_and(args: list[Any], data: Any) -> Any:
    if not args:
        raise EvaluationError("'and' expects at least one argument")
    value: Any = None
    for arg in args:
        value = _evaluate(arg, data)
        if not is_truthy(value):
            return value
    return value


def _op_or(args: list[Any], data: Any) -> Any:
    if not args:
        raise EvaluationError("'or' expects at least one argument")
    value: Any = None
    for arg in args:
        value = _evaluate(arg, data)
        if is_truthy(value):
            return value
    return value


def _collection(args: list[Any], data: Any, name: str) -> tuple[list[Any], Any]:
    if len(args) != 2:
        raise EvaluationError(f"'{name}' expects 2 arguments, got {len(args)}")
    items = _evaluate(args[0], data)
    if items is None:
        items = []
    if not isinstance(items, list):
        raise EvaluationError(f"'{name}' expects a list, got {type(items).__name__}")
    return items, args[1]


def _op_map(args: list[Any], data: Any) -> list[Any]:
    items, body = _collection(args, data, "map")
    return [_evaluate(body, item) for item in items]


def _op_filter(args: list[Any], data: Any) -> list[Any]:
    items, body = _collection(args, data, "filter")
    return [item for item in items if is_truthy(_evaluate(body, item))]


def _op_some(args: list[Any], data: Any) -> bool:
    items, body = _collection(args, data, "some")
    return any(is_truthy(_evaluate(body, item)) for item in items)


def _op_all(args: list[Any], data: Any) -> bool:
    items, body = _collection(args, data, "all")
    return bool(items) and all(is_truthy(_evaluate(body, item)) for item in items)


_LAZY_OPERATORS: dict[str, Callable[[list[Any], Any], Any]] = {
    "var": _op_var,
    "missing": _op_missing,
    "if": _op_if,
    "?:": _op_if,
    "and": _op_and,
    "or": _op_or,
    "map": _op_map,
    "filter": _op_filter,
    "some": _op_some,
    "all": _op_all,
}

_OPERATORS: dict[str, Callable[..., Any]] = {
    "==": lambda *a: _loose_equals(*_pair(a)),
    "!=": lambda *a: not _loose_equals(*_pair(a)),
    "===": lambda *a: _strict_equals(*_pair(a)),
    "!==": lambda *a: not _strict_equals(*_pair(a)),
    ">": lambda *a: _compare(lambda x, y: x > y, *_pair(a)),
    ">=": lambda *a: _compare(lambda x, y: x >= y, *_pair(a)),
    "<": _less_than,
    "<=": _less_equal,
    "!": lambda *a: not is_truthy(a[0] if a else None),
    "not": lambda *a: not is_truthy(a[0] if a else None),
    "!!": lambda *a: is_truthy(a[0] if a else None),
    "+": _add,
    "-": _subtract,
    "*": _multiply,
    "/": _divide,
    "%": _modulo,
    "in": _in,
    "length": _length,
    "cat": _cat,
    "min": _min,
    "max": _max,
    "merge": _merge,
}

OPERATORS: frozenset[str] = frozenset(_OPERATORS) | frozenset(_LAZY_OPERATORS)


def collect_vars(expr: Any) -> set[str]:
    """Every literal variable path an expression reads.

    Paths inside `map`/`filter`/`some`/`all` bodies are element-relative and
    are not reported. Computed paths (a `var` whose argument is itself an
    expression) are skipped.
    """
    found: set[str] = set()
    _collect(expr, found)
    return found


def _collect(expr: Any, found: set[str]) -> None:
    if isinstance(expr, list):
        for item in expr:
            _collect(item, found)
        return
    if not isinstance(expr, dict) or len(expr) != 1:
        return

    operator, args = next(iter(expr.items()))
    arg_list = _as_list(args)
    if operator == "var":
        if arg_list and isinstance(arg_list[0], str) and arg_list[0]:
            found.add(arg_list[0])
        return
    if operator == "missing":
        found.update(a for a in arg_list if isinstance(a, str))
        return
    if operator in ("map", "filter", "some", "all"):
        if arg_list:
            _collect(arg_list[0], found)
        return
    _collect(arg_list, found)


def unknown_operators(expr: Any) -> set[str]:
    """Operator names used in `expr` that the evaluator does not implement."""
    found: set[str] = set()
    _scan_operators(expr, found)
    return found


def _scan_operators(expr: Any, found: set[str]) -> None:
    if isinstance(expr, list):
        for item in expr:
            _scan_operators(item, found)
        return
    if not isinstance(expr, dict):
        return
    if len(expr) == 1:
        operator, args = next(iter(expr.items()))
        if operator not in OPERATORS:
            found.add(str(operator))
        _scan_operators(args, found)
        return
    for value in expr.values():
        _scan_operators(value, found)
