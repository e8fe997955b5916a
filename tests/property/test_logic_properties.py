"""Property-based tests for the expression evaluator."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from xflows.logic import evaluate, evaluate_bool, is_truthy
from tests.property.generators import json_scalar

pytestmark = pytest.mark.property


class TestLogicProperties:
    @given(values=st.lists(st.integers(min_value=-1000, max_value=1000), min_size=1, max_size=6))
    def test_addition_matches_sum(self, values):
        assert evaluate({"+": values}, {}) == sum(values)

    @given(values=st.lists(json_scalar(), min_size=1, max_size=5))
    def test_and_or_follow_truthiness(self, values):
        assert evaluate_bool({"and": values}, {}) == all(is_truthy(v) for v in values)
        assert evaluate_bool({"or": values}, {}) == any(is_truthy(v) for v in values)

    @given(value=json_scalar())
    def test_double_negation(self, value):
        assert evaluate({"!!": [value]}, {}) == is_truthy(value)
        assert evaluate({"!": [value]}, {}) == (not is_truthy(value))

    @given(value=json_scalar())
    def test_var_reads_context(self, value):
        assert evaluate({"var": "context.field"}, {"field": value}) == value
