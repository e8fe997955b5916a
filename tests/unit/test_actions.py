"""Tests for built-in actions and action binding."""

import logging

import pytest

from xflows.actions import (
    ActionResolutionError,
    BoundAction,
    bind_action,
    context_path,
    extract_json_path,
    parse_action_shorthand,
)
from xflows.registry import Registry


@pytest.fixture
def bind(registry):
    def _bind(ref, flow_actions=None):
        return bind_action(ref, flow_actions, registry)

    return _bind


class TestShorthand:
    def test_pairs(self, registry):
        spec = registry.get_action("assignField")
        assert parse_action_shorthand("assignField:field:user:value:42", spec) == {"field": "user", "value": 42}

    def test_single_positional(self, registry):
        spec = registry.get_action("clearField")
        assert parse_action_shorthand("clearField:session.token", spec) == {"field": "session.token"}

    def test_rest_keeps_separators(self, registry):
        spec = registry.get_action("log")
        assert parse_action_shorthand("log:Step: done", spec) == {"message": "Step: done"}

    def test_odd_pairs_rejected(self, registry):
        spec = registry.get_action("assignField")
        with pytest.raises(ActionResolutionError, match="key:value pairs"):
            parse_action_shorthand("assignField:field:user:value", spec)

    def test_positional_not_accepted(self, registry):
        spec = registry.get_action("copyField")
        with pytest.raises(ActionResolutionError, match="does not accept a positional"):
            parse_action_shorthand("copyField:a", spec)


class TestBinding:
    def test_object_form(self, bind):
        action = bind({"type": "assignField", "field": "context.user.name", "value": "Ana"})

        assert isinstance(action, BoundAction)
        assert action.name == "assignField"
        assert action.writes == frozenset({"context.user.name"})

    def test_reads_and_writes_from_params(self, bind):
        action = bind({"type": "copyField", "from": "event.data.email", "to": "user.email"})

        assert action.reads == frozenset({"event.data.email"})
        assert action.writes == frozenset({"context.user.email"})

    def test_map_result_writes_every_target(self, bind):
        action = bind({"type": "mapResult", "mapping": {"quote": "$.price", "context.meta.id": "$.id"}})
        assert action.writes == frozenset({"context.quote", "context.meta.id"})

    def test_named_flow_action(self, bind):
        action = bind("greet", {"greet": "log:Hello"})
        assert action.name == "log"
        assert action.params == {"message": "Hello"}

    def test_unknown_action(self, bind):
        with pytest.raises(ActionResolutionError, match="Unknown action 'teleport'"):
            bind("teleport:somewhere")

    def test_missing_required_params(self, bind):
        with pytest.raises(ActionResolutionError, match="missing parameter"):
            bind({"type": "copyField", "from": "a"})

    def test_cannot_write_event(self, bind):
        with pytest.raises(ActionResolutionError, match="cannot write 'event.data'"):
            bind({"type": "assignField", "field": "event.data", "value": 1})

    def test_cyclic_flow_actions(self, bind):
        with pytest.raises(ActionResolutionError, match="refers to itself"):
            bind("a", {"a": "b", "b": "a"})

    def test_missing_type(self, bind):
        with pytest.raises(ActionResolutionError, match="missing 'type'"):
            bind({"field": "x"})


class TestBuiltins:
    def test_assign_field_from_event_data(self, bind):
        action = bind("assignField:user.name")
        context = {"user": {}}

        result = action(context, {"type": "SET", "data": "Ana"})

        assert result == {"user": {"name": "Ana"}}
        assert context == {"user": {}}

    def test_assign_field_renders_value(self, bind):
        action = bind({"type": "assignField", "field": "label", "value": "Hi {{ name }}"})
        assert action({"name": "Bo"}, None) == {"name": "Bo", "label": "Hi Bo"}

    def test_assign_field_from_path(self, bind):
        action = bind({"type": "assignField", "field": "copy", "from": "event.data.x"})
        assert action({}, {"type": "E", "data": {"x": 5}}) == {"copy": 5}

    def test_copy_field(self, bind):
        action = bind({"type": "copyField", "from": "a.b", "to": "c"})
        assert action({"a": {"b": 1}}, None) == {"a": {"b": 1}, "c": 1}

    def test_clear_field(self, bind):
        assert bind("clearField:token")({"token": "t"}, None) == {"token": None}
        assert bind({"type": "clearField", "field": "token", "remove": True})({"token": "t"}, None) == {}

    def test_accumulate_array(self, bind):
        action = bind("accumulateArray:field:visited:value:home")

        once = action({}, None)
        twice = action(once, None)

        assert once == {"visited": ["home"]}
        assert twice == {"visited": ["home", "home"]}

    def test_generate_id(self, bind):
        action = bind({"type": "generateId", "field": "ticket", "prefix": "tk"})

        first = action({}, None)["ticket"]
        second = action({}, None)["ticket"]

        assert first.startswith("tk-")
        assert first != second

    def test_log_writes_info(self, bind, caplog):
        caplog.set_level(logging.INFO, logger="xflows.actions")
        context = {"name": "Ana"}

        result = bind("log:Started for {{ name }}")(context, None)

        assert result is context
        assert "Started for Ana" in caplog.text

    def test_render_template_into(self, bind):
        action = bind({"type": "renderTemplateInto", "target": "greeting", "template": "Hello {{ user.name }}"})
        assert action({"user": {"name": "Ana"}}, None)["greeting"] == "Hello Ana"

    def test_evaluate_expression_into(self, bind):
        action = bind({"type": "evaluateExpressionInto", "target": "total", "expression": {"*": [{"var": "qty"}, 2]}})
        assert action({"qty": 4}, None)["total"] == 8

    def test_evaluate_expression_into_stores_null_on_error(self, bind):
        action = bind({"type": "evaluateExpressionInto", "target": "ratio", "expression": {"/": [1, 0]}})
        assert action({}, None) == {"ratio": None}

    def test_validate_with_rules(self, bind):
        action = bind({
            "type": "validateWithRules",
            "rules": [
                {"field": "email", "expression": {"!!": [{"var": "email"}]}, "message": "is required"},
                {"field": "age", "expression": {">=": [{"var": "age"}, 18]}},
            ],
        })

        assert action({"email": "a@b.c", "age": 20}, None) == {"email": "a@b.c", "age": 20}
        assert action({"age": 10}, None)["errors"] == ["email: is required", "age: is invalid"]

    def test_map_result(self, bind):
        action = bind({"type": "mapResult", "mapping": {"quote.price": "$.data.price", "raw": "$"}})
        event = {"type": "done.invoke.q", "data": {"data": {"price": 9.5}}}

        result = action({}, event)

        assert result["quote"] == {"price": 9.5}
        assert result["raw"] == {"data": {"price": 9.5}}

    def test_assign_result(self, bind):
        action = bind("assignResult:result")
        assert action({}, {"type": "done.invoke.x", "data": [1, 2]}) == {"result": [1, 2]}


class TestCustomActions:
    def test_registered_action_declares_paths(self):
        registry = Registry().register_action(
            "stamp", lambda ctx, ev, params: {**ctx, "stamped": True}, writes=["context.stamped"]
        )

        action = bind_action("stamp", None, registry)

        assert action.writes == frozenset({"context.stamped"})
        assert action({}, None) == {"stamped": True}

    def test_none_result_keeps_context(self):
        registry = Registry().register_action("noop", lambda ctx, ev, params: None)
        context = {"a": 1}

        assert bind_action("noop", None, registry)(context, None) is context


def test_context_path():
    assert context_path("context.user.name") == "user.name"
    assert context_path("user.name") == "user.name"
    with pytest.raises(ActionResolutionError):
        context_path("event.data")


def test_extract_json_path():
    data = {"user": {"id": 3}, "items": [{"sku": "a"}]}

    assert extract_json_path(data, "$") == data
    assert extract_json_path(data, "$.user.id") == 3
    assert extract_json_path(data, "$.items[0].sku") == "a"
    assert extract_json_path(data, "user.id") == 3
