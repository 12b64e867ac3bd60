"""mcpreview CLI module."""

from mcpreview.cli.main import cli, main

__all__ = ["cli", "main"]
