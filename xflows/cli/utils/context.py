"""
CLI Context for xflows.

Provides flow loading and output helpers shared by all CLI commands.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape

from xflows.config import RuntimeConfig
from xflows.loader import load_flow
from xflows.models import FlowDefinition, LoadError
from xflows.registry import Registry


@dataclass
class CLIContext:
    """
    Context object for CLI commands.

    Created once in the app callback and reached through `ctx.obj`.

    Attributes:
        console: Rich console for output
        verbose: Enable verbose output (ignored when json_mode is True)
        config: Runtime configuration read from the environment
        registry: Registry used to compile flows
        json_mode: When True, suppress all non-JSON output (set by commands)
    """

    console: Console
    verbose: bool = False
    config: RuntimeConfig = field(default_factory=RuntimeConfig)
    registry: Registry = field(init=False)
    json_mode: bool = False

    def __post_init__(self):
        self.registry = Registry(config=self.config)

    def print_verbose(self, message: str, **kwargs) -> None:
        """Print a message only in verbose, non-JSON mode."""
        if self.verbose and not self.json_mode:
            self.console.print(message, **kwargs)

    def print_error(self, message: str) -> None:
        if not self.json_mode:
            self.console.print(f"[red]Error:[/red] {escape(message)}", soft_wrap=True)

    def print_warning(self, message: str) -> None:
        if not self.json_mode:
            self.console.print(f"[yellow]Warning:[/yellow] {escape(message)}", soft_wrap=True)

    def print_success(self, message: str) -> None:
        if not self.json_mode:
            self.console.print(f"[green]✓[/green] {escape(message)}", soft_wrap=True)

    def print_json(self, data: Any) -> None:
        """Print data as JSON (always prints, even in JSON mode)."""
        self.console.print_json(data=data)

    def load_flow_or_exit(self, source: Path) -> FlowDefinition:
        """
        Read a flow file and exit with code 1 on failure.

        Raises:
            typer.Exit: If the file cannot be loaded
        """
        self.print_verbose(f"[dim]Loading flow from: {source}[/dim]")
        try:
            return load_flow(source)
        except LoadError as e:
            if self.json_mode:
                self.print_json(data={"error": str(e)})
            else:
                self.print_error(str(e))
            raise typer.Exit(code=1) from e
