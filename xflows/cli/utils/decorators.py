"""Decorators for CLI error handling and consistent output formatting."""

from collections.abc import Callable
from functools import wraps

import typer


def handle_cli_errors(error_message: str) -> Callable:
    """Decorator to handle CLI errors with consistent formatting.

    Exceptions escaping the command are printed as an error (or as
    {"error": ...} in JSON mode) and turned into exit code 1.

    Args:
        error_message: Base error message (can include an {error} placeholder)
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            ctx = args[0] if args else kwargs.get("ctx")
            if not ctx or not hasattr(ctx, "obj"):
                return func(*args, **kwargs)

            cli_ctx = ctx.obj
            try:
                return func(*args, **kwargs)
            except typer.Exit:
                raise
            except Exception as e:
                if "{error}" in error_message:
                    formatted_message = error_message.format(error=e)
                else:
                    formatted_message = f"{error_message}: {e}"

                if getattr(cli_ctx, "json_mode", False):
                    cli_ctx.print_json(data={"error": formatted_message})
                else:
                    cli_ctx.print_error(formatted_message)
                raise typer.Exit(1) from e

        return wrapper

    return decorator
