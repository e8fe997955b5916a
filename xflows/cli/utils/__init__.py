"""CLI utilities package.

- CLIContext: shared state for commands
- handle_cli_errors: consistent error output
"""

from xflows.cli.utils.context import CLIContext
from xflows.cli.utils.decorators import handle_cli_errors

__all__ = [
    "CLIContext",
    "handle_cli_errors",
]
