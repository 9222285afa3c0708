"""CLI application setup using Typer.

Provides the command-line interface for agentbox operations.
"""

from agentbox.cli.main import app

__all__ = ["app"]
