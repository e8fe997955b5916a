"""Validate command for flow definition files."""

from pathlib import Path
from typing import Annotated

import typer

from xflows.cli.utils import handle_cli_errors
from xflows.compiler import validate_flow


@handle_cli_errors("Validation failed")
def validate_command(
    ctx: typer.Context,
    flow_file: Annotated[Path, typer.Argument(help="Flow definition file (JSON/YAML)")],
    json_output: Annotated[bool, typer.Option("--json", help="Output in JSON format")] = False,
):
    """
    Compile a flow definition and report every error and warning.

    Exits with code 1 when the flow has errors.
    """
    cli_ctx = ctx.obj
    cli_ctx.json_mode = json_output

    definition = cli_ctx.load_flow_or_exit(flow_file)
    result = validate_flow(definition, cli_ctx.registry, cli_ctx.config)

    if json_output:
        cli_ctx.print_json(data=result.to_dict())
    else:
        for error in result.errors:
            cli_ctx.print_error(error)
        for warning in result.warnings:
            cli_ctx.print_warning(warning)
        if result.valid:
            cli_ctx.print_success(f"{flow_file} is valid ({len(result.warnings)} warning(s))")
        else:
            cli_ctx.console.print(f"{flow_file}: {len(result.errors)} error(s)", soft_wrap=True)

    if not result.valid:
        raise typer.Exit(code=1)
