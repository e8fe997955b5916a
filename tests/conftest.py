"""Pytest configuration and shared fixtures for the xflows test suite."""

import json
from pathlib import Path
from typing import Any

import pytest
from ruamel.yaml import YAML

from xflows import Registry


@pytest.fixture
def registry():
    """A fresh registry with the built-in actions, actors and transforms."""
    return Registry()


@pytest.fixture
def scenario_a_flow() -> dict[str, Any]:
    """Two-state flow: NEXT moves from 'a' to the final state 'b'."""
    return {
        "initial": "a",
        "states": {
            "a": {"on": {"NEXT": {"target": "b"}}},
            "b": {"type": "final"},
        },
    }


@pytest.fixture
def scored_flow() -> dict[str, Any]:
    """Flow whose only transition is gated by a shorthand guard on context.score."""

    def build(score: int) -> dict[str, Any]:
        return {
            "id": "scored",
            "initial": "review",
            "context": {"score": score},
            "states": {
                "review": {
                    "on": {
                        "DECIDE": {"target": "approved", "guard": "greaterThan:context.score:50"},
                    },
                },
                "approved": {"type": "final"},
            },
        }

    return build


@pytest.fixture
def onboarding_flow() -> dict[str, Any]:
    """Multi-step onboarding flow with a nested compound state."""
    return {
        "id": "onboarding",
        "initial": "welcome",
        "context": {"user": {"name": "", "email": None}, "steps": []},
        "guards": {
            "hasEmail": "isNotNull:context.user.email",
        },
        "states": {
            "welcome": {
                "meta": {"view": "WelcomeScreen"},
                "entry": ["accumulateArray:field:steps:value:welcome"],
                "on": {"START": "profile"},
            },
            "profile": {
                "initial": "name",
                "meta": {"view": "ProfileScreen"},
                "states": {
                    "name": {
                        "on": {
                            "SET_NAME": {
                                "target": "email",
                                "actions": [{"type": "assignField", "field": "user.name"}],
                            },
                        },
                    },
                    "email": {
                        "on": {
                            "SET_EMAIL": {
                                "actions": [{"type": "assignField", "field": "user.email"}],
                            },
                            "CONTINUE": {"target": "#done", "guard": "hasEmail"},
                        },
                    },
                },
                "on": {"CANCEL": "cancelled"},
            },
            "done": {
                "type": "final",
                "meta": {"view": "DoneScreen"},
                "entry": [
                    {
                        "type": "renderTemplateInto",
                        "target": "greeting",
                        "template": "Welcome, {{ context.user.name }}!",
                    }
                ],
            },
            "cancelled": {"type": "final"},
        },
    }


@pytest.fixture
def write_flow(tmp_path):
    """Write a flow definition to a temporary JSON or YAML file and return its path."""

    def write(definition: Any, name: str = "flow.json") -> Path:
        path = tmp_path / name
        if path.suffix in (".yml", ".yaml"):
            yaml = YAML(typ="safe", pure=True)
            with open(path, "w", encoding="utf-8") as f:
                yaml.dump(definition, f)
        else:
            path.write_text(json.dumps(definition), encoding="utf-8")
        return path

    return write
