"""Tests for rendering state ui blocks."""

import logging

from xflows.templates import TemplateRenderer
from xflows.view import evaluate_condition, render_state_ui

CONTEXT = {"user": {"name": "Ana", "email": None}, "plan": "pro", "items": [1, 2]}


def test_strings_are_rendered():
    ui = {"title": "Welcome back, {{ context.user.name | uppercase }}", "count": 3}

    assert render_state_ui(ui, CONTEXT) == {"title": "Welcome back, ANA", "count": 3}


def test_input_is_left_untouched():
    ui = {"title": "Hi {{ context.user.name }}"}

    render_state_ui(ui, CONTEXT)

    assert ui == {"title": "Hi {{ context.user.name }}"}


def test_hidden_items_are_removed():
    ui = {
        "fields": [
            {"name": "email", "visible": "isNotNull:context.user.email"},
            {"name": "coupon", "visible": {"==": [{"var": "context.plan"}, "pro"]}},
            {"name": "legacy", "hidden": True},
        ]
    }

    assert render_state_ui(ui, CONTEXT) == {"fields": [{"name": "coupon", "visible": True}]}


def test_flags_become_booleans():
    ui = {"submit": {"enabled": "{{ context.plan }}", "disabled": "false"}}

    assert render_state_ui(ui, CONTEXT) == {"submit": {"enabled": True, "disabled": False}}


class TestEvaluateCondition:
    renderer = TemplateRenderer()

    def test_literals(self):
        assert evaluate_condition(True, CONTEXT, self.renderer) is True
        assert evaluate_condition(0, CONTEXT, self.renderer) is False

    def test_shorthand_guard(self):
        assert evaluate_condition("equals:context.plan:pro", CONTEXT, self.renderer) is True

    def test_invalid_shorthand_is_false(self, caplog):
        caplog.set_level(logging.WARNING, logger="xflows.view")

        assert evaluate_condition("sometimes:context.plan", CONTEXT, self.renderer) is False
        assert "is not a valid guard" in caplog.text

    def test_event_is_available(self):
        assert evaluate_condition("isTruthy:event.data.ok", CONTEXT, self.renderer, {"data": {"ok": 1}}) is True
