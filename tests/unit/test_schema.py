"""Tests for structural validation of flow definitions."""

from xflows.models import CompileErrorType
from xflows.schema import check_structure


def test_valid_definition(onboarding_flow):
    assert check_structure(onboarding_flow) == []


def test_non_object():
    errors = check_structure(["not", "a", "flow"])

    assert len(errors) == 1
    assert errors[0].error_type == CompileErrorType.SCHEMA_ERROR


def test_states_required():
    errors = check_structure({"initial": "a"})

    assert [error.context["location"] for error in errors] == ["states"]


def test_misspelled_key_is_reported_with_state():
    definition = {
        "initial": "a",
        "states": {
            "a": {"states": {"b": {"onn": {"GO": "a"}}}},
        },
    }

    errors = check_structure(definition)

    assert len(errors) == 1
    assert errors[0].state_id == "a.b"
    assert "onn" in errors[0].message


def test_after_keys_must_be_delays():
    definition = {"initial": "a", "states": {"a": {"after": {"soon": "a"}}}}

    errors = check_structure(definition)

    assert errors
    assert all(error.state_id == "a" for error in errors)
    assert any("must be a non-negative integer" in error.message for error in errors)


def test_retry_bounds():
    definition = {
        "initial": "a",
        "states": {"a": {"invoke": {"src": "delay", "retry": {"max": -1}}}},
    }

    errors = check_structure(definition)

    assert any("retry.max" in error.message for error in errors)


def test_every_problem_is_reported():
    definition = {
        "initial": "a",
        "states": {
            "a": {"type": "sometimes"},
            "b": {"entry": "not-a-list"},
        },
        "extra": True,
    }

    errors = check_structure(definition)

    locations = {error.context["location"] for error in errors}
    assert "extra" in locations
    assert "states.a.type" in locations
    assert any(location.startswith("states.b.entry") for location in locations)
