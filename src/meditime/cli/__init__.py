"""
CLI layer for meditime.

Provides a Typer application with sub-commands. Business logic lives in
``meditime.core`` and ``meditime.scheduling``; this package handles only
argument parsing, prompts and terminal output.

Entry point::

    meditime --help
"""

from meditime.cli.app import app

__all__ = ["app"]
