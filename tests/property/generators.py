"""Hypothesis strategies for xflows property tests.

The strategies produce JSON-like contexts, context paths and guard
shorthand references that the compiler and runtime accept.
"""

from typing import Any

import hypothesis.strategies as st

from xflows.guards import GuardKind

FIELD_NAMES = ["name", "email", "age", "score", "status", "items", "profile", "flags", "total"]

# Characters that never start a template expression
PLAIN_TEXT_ALPHABET = st.characters(
    whitelist_categories=("L", "N", "Zs"),
    whitelist_characters=".,:;!?-_()'",
)


def json_scalar() -> st.SearchStrategy[Any]:
    return st.one_of(
        st.none(),
        st.booleans(),
        st.integers(min_value=-10_000, max_value=10_000),
        st.floats(min_value=-1e6, max_value=1e6, allow_nan=False, allow_infinity=False),
        st.text(alphabet=PLAIN_TEXT_ALPHABET, max_size=12),
    )


def json_value(max_leaves: int = 10) -> st.SearchStrategy[Any]:
    return st.recursive(
        json_scalar(),
        lambda children: st.one_of(
            st.lists(children, max_size=3),
            st.dictionaries(st.sampled_from(FIELD_NAMES), children, max_size=3),
        ),
        max_leaves=max_leaves,
    )


@st.composite
def flow_context(draw) -> dict[str, Any]:
    """A context dict keyed by common field names."""
    return draw(st.dictionaries(st.sampled_from(FIELD_NAMES), json_value(), max_size=5))


@st.composite
def context_path(draw) -> str:
    """A `context.`-scoped dot path one to three segments deep."""
    parts = draw(st.lists(st.sampled_from(FIELD_NAMES), min_size=1, max_size=3))
    return "context." + ".".join(parts)


@st.composite
def shorthand_guard(draw) -> str:
    """A guard shorthand reference such as "greaterThan:context.score:50"."""
    kind = draw(st.sampled_from(list(GuardKind)))
    path = draw(context_path())
    if not kind.needs_literal:
        return f"{kind.value}:{path}"
    literal = draw(st.one_of(st.integers(min_value=-100, max_value=100), st.sampled_from(["true", "null", "'pro'"])))
    return f"{kind.value}:{path}:{literal}"


@st.composite
def plain_text(draw, max_size: int = 40) -> str:
    """Text without template delimiters."""
    return draw(st.text(alphabet=PLAIN_TEXT_ALPHABET, max_size=max_size))
