"""Run command: drive a flow instance with a list of events."""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer

from xflows.cli.utils import CLIContext, handle_cli_errors
from xflows.compiler import compile_flow
from xflows.models import FlowCompileError
from xflows.runtime import Snapshot, create_instance


def parse_event(raw: str) -> Any:
    """An event is either a plain type ("SUBMIT") or a JSON object."""
    text = raw.strip()
    if text.startswith("{"):
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise typer.BadParameter(f"Invalid JSON event '{raw}': {e}") from e
    return text


async def _drive(cli_ctx: CLIContext, definition: dict[str, Any], events: list[Any], settle: float) -> Snapshot:
    graph = compile_flow(definition, cli_ctx.registry, cli_ctx.config)
    for warning in graph.warnings:
        cli_ctx.print_verbose(f"[yellow]Warning:[/yellow] {warning}")

    runtime = create_instance(graph, cli_ctx.registry)
    try:
        for event in events:
            if runtime.get_snapshot().status != "active":
                cli_ctx.print_warning(f"Flow finished before event {event!r}")
                break
            problem = runtime.explain(event)
            if problem is not None:
                cli_ctx.print_verbose(f"[dim]{problem}[/dim]")
            runtime.send(event)
            cli_ctx.print_verbose(f"{event!r} -> {runtime.state_id}")
            # Let timers and invokes started by the transition make progress
            await asyncio.sleep(settle)
        if not events:
            await asyncio.sleep(settle)
        return runtime.get_snapshot()
    finally:
        runtime.stop()


@handle_cli_errors("Run failed")
def run_command(
    ctx: typer.Context,
    flow_file: Annotated[Path, typer.Argument(help="Flow definition file (JSON/YAML)")],
    event: Annotated[
        list[str] | None,
        typer.Option("--event", "-e", help="Event to send: a type or a JSON object (repeatable)"),
    ] = None,
    settle: Annotated[
        float, typer.Option("--settle", help="Seconds to wait after each event for pending work")
    ] = 0.05,
    json_output: Annotated[bool, typer.Option("--json", help="Output in JSON format")] = False,
):
    """
    Start an instance of a flow, send events in order and print the final snapshot.
    """
    cli_ctx = ctx.obj
    cli_ctx.json_mode = json_output

    definition = cli_ctx.load_flow_or_exit(flow_file)
    events = [parse_event(raw) for raw in event or []]

    try:
        snapshot = asyncio.run(_drive(cli_ctx, definition, events, settle))
    except FlowCompileError as e:
        if json_output:
            cli_ctx.print_json(data={"error": str(e), "errors": [str(error) for error in e.errors]})
        else:
            cli_ctx.print_error(str(e))
        raise typer.Exit(code=1) from e

    if json_output:
        cli_ctx.print_json(data=snapshot.to_dict())
    else:
        cli_ctx.console.print(f"State: [bold]{snapshot.state_id}[/bold] ({snapshot.status.value})")
        cli_ctx.console.print_json(data=snapshot.context)
