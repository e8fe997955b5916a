"""Tests for the validate CLI command."""

import json

import pytest
from typer.testing import CliRunner

from xflows.cli.main import app

runner = CliRunner()


@pytest.fixture
def broken_flow(write_flow):
    return write_flow({"initial": "a", "states": {"a": {"on": {"GO": "b"}}}}, "broken.json")


class TestValidateCommand:
    """Test suite for the validate CLI command."""

    def test_valid_flow(self, onboarding_flow, write_flow):
        result = runner.invoke(app, ["validate", str(write_flow(onboarding_flow, "onboarding.yaml"))])

        assert result.exit_code == 0
        assert "is valid (0 warning(s))" in result.stdout

    def test_errors_exit_with_one(self, broken_flow):
        result = runner.invoke(app, ["validate", str(broken_flow)])

        assert result.exit_code == 1
        assert "[a] Transition 'GO' targets unknown state 'b'" in result.stdout
        assert "1 error(s)" in result.stdout

    def test_warnings_are_listed(self, write_flow):
        path = write_flow(
            {"initial": "a", "states": {"a": {"on": {"GO": "b"}}, "b": {}, "c": {"type": "final"}}}
        )

        result = runner.invoke(app, ["validate", str(path)])

        assert result.exit_code == 0
        assert "Warning:" in result.stdout
        assert "State 'c' is unreachable" in result.stdout

    def test_json_output(self, onboarding_flow, write_flow):
        result = runner.invoke(app, ["validate", str(write_flow(onboarding_flow)), "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"valid": True, "errors": [], "warnings": []}

    def test_json_output_with_errors(self, broken_flow):
        result = runner.invoke(app, ["validate", str(broken_flow), "--json"])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["valid"] is False
        assert data["errors"] == ["[a] Transition 'GO' targets unknown state 'b'"]

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["validate", str(tmp_path / "absent.yaml")])

        assert result.exit_code == 1
        assert "File not found" in result.stdout

    def test_missing_file_json(self, tmp_path):
        result = runner.invoke(app, ["validate", str(tmp_path / "absent.yaml"), "--json"])

        assert result.exit_code == 1
        assert "File not found" in json.loads(result.stdout)["error"]

    def test_verbose(self, scenario_a_flow, write_flow):
        result = runner.invoke(app, ["--verbose", "validate", str(write_flow(scenario_a_flow))])

        assert result.exit_code == 0
        assert "Loading flow from:" in result.stdout

    def test_invalid_configuration(self, scenario_a_flow, write_flow):
        result = runner.invoke(
            app, ["validate", str(write_flow(scenario_a_flow))], env={"XFLOWS_LOG_LEVEL": "loud"}
        )

        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout

    def test_strict_templates_from_environment(self, write_flow):
        path = write_flow(
            {
                "initial": "a",
                "states": {"a": {"entry": ["log:Hi {{ context.name }}"], "on": {"GO": "b"}}, "b": {"type": "final"}},
            }
        )

        lenient = runner.invoke(app, ["validate", str(path), "--json"])
        strict = runner.invoke(app, ["validate", str(path), "--json"], env={"XFLOWS_STRICT_TEMPLATES": "true"})

        assert lenient.exit_code == 0
        assert strict.exit_code == 1
        assert json.loads(strict.stdout)["errors"] == ["[a] Log message uses 'context.name', which nothing provides"]
