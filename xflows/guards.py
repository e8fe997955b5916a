"""Guard types and parsing for xflows.

Guards gate transitions. Every guard reference is parsed once, at compile
time, into one of three tagged variants:

- FieldGuard: a built-in check on a single field, written as shorthand
  "<kind>:<field>[:<literal>]", e.g. "greaterThan:context.riskScore:80"
- LogicGuard: a JSON-Logic expression
- CallableGuard: a host function registered on the Registry

Evaluation never re-parses strings.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from xflows.logic import collect_vars, evaluate_bool, is_logic, unknown_operators
from xflows.models import EvaluationError, GuardRef
from xflows.paths import parse_path, resolve_scoped, split_scope

if TYPE_CHECKING:
    from xflows.registry import Registry

logger = logging.getLogger(__name__)

GuardFn = Callable[[Any, Any], bool]


class GuardResolutionError(ValueError):
    """A guard reference could not be parsed or resolved."""

    def __init__(self, message: str, unknown: bool = False):
        super().__init__(message)
        self.unknown = unknown


class GuardKind(StrEnum):
    """Built-in field checks available through shorthand."""

    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"
    IS_TRUTHY = "isTruthy"
    IS_FALSY = "isFalsy"
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_OR_EQUAL = "greaterThanOrEqual"
    LESS_THAN = "lessThan"
    LESS_THAN_OR_EQUAL = "lessThanOrEqual"
    HAS_MIN_LENGTH = "hasMinLength"
    CONTAINS = "contains"

    @property
    def needs_literal(self) -> bool:
        return self not in (
            GuardKind.IS_NULL,
            GuardKind.IS_NOT_NULL,
            GuardKind.IS_TRUTHY,
            GuardKind.IS_FALSY,
        )

    def check(self, value: Any, literal: Any) -> bool:
        """Apply this check to a resolved value."""
        if self == GuardKind.IS_NULL:
            return value is None
        if self == GuardKind.IS_NOT_NULL:
            return value is not None
        if self == GuardKind.IS_TRUTHY:
            return bool(value)
        if self == GuardKind.IS_FALSY:
            return not value
        if self == GuardKind.EQUALS:
            return value == literal
        if self == GuardKind.NOT_EQUALS:
            return value != literal

        if self in (
            GuardKind.GREATER_THAN,
            GuardKind.GREATER_THAN_OR_EQUAL,
            GuardKind.LESS_THAN,
            GuardKind.LESS_THAN_OR_EQUAL,
        ):
            number = _as_float(value)
            threshold = _as_float(literal)
            if number is None or threshold is None:
                return False
            if self == GuardKind.GREATER_THAN:
                return number > threshold
            if self == GuardKind.GREATER_THAN_OR_EQUAL:
                return number >= threshold
            if self == GuardKind.LESS_THAN:
                return number < threshold
            return number <= threshold

        if self == GuardKind.HAS_MIN_LENGTH:
            minimum = _as_float(literal)
            if minimum is None or not isinstance(value, (str, list, dict)):
                return False
            return len(value) >= minimum

        if self == GuardKind.CONTAINS:
            if isinstance(value, str):
                return str(literal) in value
            if isinstance(value, (list, tuple)):
                return literal in value
            return False

        raise ValueError(f"Unsupported guard kind: {self}")


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_literal(text: str) -> Any:
    """
    Parse a shorthand literal.

    Examples:
        "'approved'" → "approved"
        "80" → 80
        "2.5" → 2.5
        "true" → True
        "null" → None
        "approved" → "approved" (bare words stay strings)
    """
    text = text.strip()

    if len(text) >= 2 and (
        (text.startswith("'") and text.endswith("'"))
        or (text.startswith('"') and text.endswith('"'))
    ):
        return text[1:-1]

    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("null", "none"):
        return None

    try:
        if "." not in text and "e" not in lowered:
            return int(text)
        return float(text)
    except ValueError:
        return text


# ============================================================================
# Guard variants
# ============================================================================


class Guard(ABC):
    """A compiled, immutable guard."""

    name: str

    @abstractmethod
    def test(self, context: Any, event: Any = None) -> bool:
        """
        Evaluate the guard.

        Raises:
            EvaluationError: If the guard cannot be evaluated
        """

    @property
    @abstractmethod
    def reads(self) -> frozenset[str]:
        """Scoped paths (`context.x`, `event.y`) the guard reads."""

    def check(self, context: Any, event: Any = None) -> bool:
        """Fail-safe evaluation: errors count as false and are logged."""
        try:
            return self.test(context, event)
        except EvaluationError as e:
            logger.warning(f"Guard '{self.name}' failed to evaluate, treating as false: {e}")
            return False


@dataclass(frozen=True)
class FieldGuard(Guard):
    """Built-in check on one field: `{kind, path, literal}`."""

    kind: GuardKind
    path: str
    literal: Any = None
    name: str = ""

    def test(self, context: Any, event: Any = None) -> bool:
        value = resolve_scoped(self.path, context, event)
        return self.kind.check(value, self.literal)

    @property
    def reads(self) -> frozenset[str]:
        scope, rest = split_scope(self.path)
        return frozenset({f"{scope}.{rest}"})


@dataclass(frozen=True)
class LogicGuard(Guard):
    """JSON-Logic expression coerced to a boolean."""

    expression: Any
    name: str = ""

    def test(self, context: Any, event: Any = None) -> bool:
        return evaluate_bool(self.expression, context, event)

    @property
    def reads(self) -> frozenset[str]:
        paths = set()
        for path in collect_vars(self.expression):
            scope, rest = split_scope(path)
            paths.add(f"{scope}.{rest}")
        return frozenset(paths)


@dataclass(frozen=True)
class CallableGuard(Guard):
    """Host-provided predicate `fn(context, event) -> bool`."""

    fn: GuardFn
    name: str = ""
    declared_reads: frozenset[str] = field(default_factory=frozenset)

    def test(self, context: Any, event: Any = None) -> bool:
        try:
            return bool(self.fn(context, event))
        except Exception as e:
            raise EvaluationError(f"Guard '{self.name}' raised {type(e).__name__}: {e}") from e

    @property
    def reads(self) -> frozenset[str]:
        return self.declared_reads


# ============================================================================
# Parser
# ============================================================================


class GuardParser:
    """
    Resolves guard references into Guard instances.

    Resolution order for string references:
    1. Named guard declared in the flow's `guards` section
    2. Guard registered on the Registry
    3. Inline shorthand ("kind:field[:literal]")

    Dict references are inline JSON-Logic expressions.
    """

    @classmethod
    def parse(
        cls,
        ref: GuardRef,
        flow_guards: Mapping[str, GuardRef] | None = None,
        registry: "Registry | None" = None,
    ) -> Guard:
        """
        Parse a guard reference.

        Raises:
            GuardResolutionError: If the reference is unknown or malformed
        """
        return cls._parse(ref, flow_guards or {}, registry, seen=())

    @classmethod
    def _parse(
        cls,
        ref: GuardRef,
        flow_guards: Mapping[str, GuardRef],
        registry: "Registry | None",
        seen: tuple[str, ...],
    ) -> Guard:
        if isinstance(ref, dict):
            return cls._create_logic(ref, name="<inline>")

        if not isinstance(ref, str) or not ref.strip():
            raise GuardResolutionError(f"Invalid guard reference: {ref!r}")

        ref = ref.strip()
        if ref in flow_guards:
            if ref in seen:
                raise GuardResolutionError(f"Guard '{ref}' refers to itself")
            definition = flow_guards[ref]
            guard = cls._parse(definition, flow_guards, registry, seen + (ref,))
            return _renamed(guard, ref)

        if registry is not None:
            registered = registry.get_guard(ref)
            if registered is not None:
                fn, reads = registered
                return CallableGuard(fn=fn, name=ref, declared_reads=frozenset(reads))

        if ":" in ref:
            return cls.parse_shorthand(ref)

        raise GuardResolutionError(f"Unknown guard '{ref}'", unknown=True)

    @classmethod
    def parse_shorthand(cls, ref: str) -> FieldGuard:
        """
        Parse "<kind>:<field>[:<literal>]".

        The literal may itself contain ':' (everything after the second
        separator is the literal).

        Examples:
            "greaterThan:context.score:50" → FieldGuard(GREATER_THAN, "context.score", 50)
            "isNotNull:context.user" → FieldGuard(IS_NOT_NULL, "context.user")
        """
        kind_name, _, remainder = ref.partition(":")
        try:
            kind = GuardKind(kind_name.strip())
        except ValueError as e:
            raise GuardResolutionError(f"Unknown guard kind '{kind_name}' in '{ref}'", unknown=True) from e

        field_path, separator, literal_text = remainder.partition(":")
        field_path = field_path.strip()
        if not field_path:
            raise GuardResolutionError(f"Guard '{ref}' is missing a field")
        if not field_path.startswith(("context.", "event.")):
            raise GuardResolutionError(f"Guard field '{field_path}' must start with 'context.' or 'event.': '{ref}'")
        _check_path(field_path, ref)

        if kind.needs_literal and not separator:
            raise GuardResolutionError(f"Guard kind '{kind.value}' requires a literal: '{ref}'")

        literal = parse_literal(literal_text) if separator else None
        return FieldGuard(kind=kind, path=field_path, literal=literal, name=ref)

    @classmethod
    def _create_logic(cls, expression: dict[str, Any], name: str) -> LogicGuard:
        if not is_logic(expression):
            raise GuardResolutionError(f"Invalid guard expression: {expression!r}")
        unknown = unknown_operators(expression)
        if unknown:
            raise GuardResolutionError(f"Guard expression uses unknown operator(s): {', '.join(sorted(unknown))}")
        for path in sorted(collect_vars(expression)):
            _check_path(path, name)
        return LogicGuard(expression=expression, name=name)


def _check_path(path: str, ref: str) -> None:
    try:
        parse_path(path)
    except ValueError as e:
        raise GuardResolutionError(f"Invalid field path '{path}' in guard '{ref}': {e}") from e


def _renamed(guard: Guard, name: str) -> Guard:
    if isinstance(guard, FieldGuard):
        return FieldGuard(kind=guard.kind, path=guard.path, literal=guard.literal, name=name)
    if isinstance(guard, LogicGuard):
        return LogicGuard(expression=guard.expression, name=name)
    return guard
