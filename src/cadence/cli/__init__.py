"""
CLI layer for cadence.

A Typer application over the stores and the engine service. It handles
only terminal transport: argument parsing, coloured output and table
formatting.

Entry point::

    cadence --help
"""

from cadence.cli.app import app

__all__ = ["app"]
