"""xflows CLI - Typer-based command line interface."""

import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from xflows.cli.commands import run_command, validate_command
from xflows.cli.utils import CLIContext
from xflows.config import RuntimeConfig
from xflows.models import ConfigValidationError

app = typer.Typer(
    name="xflows",
    help="xflows: compile and run declarative state flows",
    no_args_is_help=True,
)
console = Console()


def configure_logging(level: str) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose output")] = False,
):
    """
    Set up the CLIContext shared by all commands.

    Configuration is read from XFLOWS_* environment variables.
    """
    try:
        config = RuntimeConfig.from_env()
    except ConfigValidationError as e:
        console.print(f"[red]Error:[/red] Invalid configuration: {e}")
        raise typer.Exit(code=1) from e

    configure_logging("DEBUG" if verbose else config.log_level)
    ctx.obj = CLIContext(console=console, verbose=verbose, config=config)


app.command(name="validate")(validate_command)
app.command(name="run")(run_command)


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
