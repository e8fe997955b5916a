"""Rendering of a state's `ui` block.

The `ui` block is opaque to the compiler. Hosts call render_state_ui() (or
FlowRuntime.render_view()) to get a copy in which every string has gone
through the template renderer and every visibility flag is a plain bool:

    ui:
      title: "Welcome back, {{ context.user.name }}"
      fields:
        - name: email
          visible: "isNotNull:context.user"
        - name: coupon
          visible: {"==": [{"var": "context.plan"}, "pro"]}
"""

import logging
from typing import Any

from xflows.guards import GuardParser, GuardResolutionError
from xflows.logic import evaluate_bool, is_logic
from xflows.models import EvaluationError
from xflows.templates import TemplateRenderer

logger = logging.getLogger(__name__)

CONDITION_KEYS = frozenset({"visible", "enabled", "disabled", "hidden"})

_FALSE_STRINGS = frozenset({"", "false", "0", "no", "null", "none"})


def render_state_ui(
    ui: dict[str, Any],
    context: Any,
    renderer: TemplateRenderer | None = None,
    event: Any = None,
) -> dict[str, Any]:
    """Render a `ui` block against a context; the input is left untouched."""
    renderer = renderer or TemplateRenderer()
    rendered = _render(ui, context, renderer, event)
    return rendered if isinstance(rendered, dict) else {}


def evaluate_condition(condition: Any, context: Any, renderer: TemplateRenderer, event: Any = None) -> bool:
    """Resolve a visibility-style flag to a bool. Evaluation errors count as false."""
    if isinstance(condition, bool):
        return condition
    if is_logic(condition):
        try:
            return evaluate_bool(condition, context, event)
        except EvaluationError as e:
            logger.warning(f"UI condition {condition!r} failed to evaluate, treating as false: {e}")
            return False
    if isinstance(condition, str):
        if ":" in condition and "{{" not in condition and "<%" not in condition:
            try:
                return GuardParser.parse_shorthand(condition).check(context, event)
            except GuardResolutionError as e:
                logger.warning(f"UI condition '{condition}' is not a valid guard: {e}")
                return False
        return renderer.render(condition, context, event).strip().lower() not in _FALSE_STRINGS
    return bool(condition)


def _render(value: Any, context: Any, renderer: TemplateRenderer, event: Any) -> Any:
    if isinstance(value, dict):
        result: dict[str, Any] = {}
        for key, item in value.items():
            if key in CONDITION_KEYS:
                result[key] = evaluate_condition(item, context, renderer, event)
            else:
                result[key] = _render(item, context, renderer, event)
        return result
    if isinstance(value, list):
        items = [_render(item, context, renderer, event) for item in value]
        return [item for item in items if not _hidden(item)]
    if isinstance(value, str):
        return renderer.render(value, context, event)
    return value


def _hidden(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    return item.get("visible") is False or item.get("hidden") is True
