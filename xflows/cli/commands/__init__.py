"""CLI commands module for xflows."""

from xflows.cli.commands.run import run_command
from xflows.cli.commands.validate import validate_command

__all__ = [
    "run_command",
    "validate_command",
]
