"""Command line interface for xflows."""

from xflows.cli.main import app, main

__all__ = ["app", "main"]
