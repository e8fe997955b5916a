"""Tests for the run CLI command."""

import json

from typer.testing import CliRunner

from xflows.cli.main import app

runner = CliRunner()


def run(path, *events, extra=()):
    args = ["run", str(path), "--settle", "0", "--json", *extra]
    for event in events:
        args.extend(["--event", event])
    return runner.invoke(app, args)


class TestRunCommand:
    """Test suite for the run CLI command."""

    def test_drives_flow_to_final_state(self, onboarding_flow, write_flow):
        result = run(
            write_flow(onboarding_flow),
            "START",
            '{"type": "SET_NAME", "data": "Ana"}',
            '{"type": "SET_EMAIL", "data": "ana@example.com"}',
            "CONTINUE",
        )

        assert result.exit_code == 0
        snapshot = json.loads(result.stdout)
        assert snapshot["stateId"] == "done"
        assert snapshot["status"] == "done"
        assert snapshot["view"] == "DoneScreen"
        assert snapshot["context"]["greeting"] == "Welcome, Ana!"
        assert snapshot["event"] == "CONTINUE"

    def test_no_events_reports_initial_snapshot(self, onboarding_flow, write_flow):
        result = run(write_flow(onboarding_flow))

        assert result.exit_code == 0
        assert json.loads(result.stdout)["stateId"] == "welcome"

    def test_settle_lets_timers_fire(self, write_flow):
        path = write_flow(
            {"initial": "waiting", "states": {"waiting": {"after": {"10": "timeout"}}, "timeout": {"type": "final"}}}
        )

        result = runner.invoke(app, ["run", str(path), "--settle", "0.2", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["stateId"] == "timeout"

    def test_events_after_final_state_are_skipped(self, scenario_a_flow, write_flow):
        result = runner.invoke(app, ["run", str(write_flow(scenario_a_flow)), "-e", "NEXT", "-e", "NEXT", "--settle", "0"])

        assert result.exit_code == 0
        assert "Flow finished before event 'NEXT'" in result.stdout
        assert "State: b (done)" in result.stdout

    def test_compile_errors(self, write_flow):
        path = write_flow({"initial": "a", "states": {"a": {"on": {"GO": "b"}}}})

        result = run(path, "GO")

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["errors"] == ["[a] Transition 'GO' targets unknown state 'b'"]

    def test_invalid_json_event(self, scenario_a_flow, write_flow):
        result = runner.invoke(app, ["run", str(write_flow(scenario_a_flow)), "-e", "{broken"])

        assert result.exit_code == 1
        assert "Invalid JSON event" in result.stdout
