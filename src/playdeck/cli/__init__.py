"""
CLI layer for playdeck.

Provides a Typer application whose sub-commands delegate to the catalog and
execution layers.  This package handles only terminal transport: argument
parsing, coloured output and table formatting.

Entry point::

    playdeck --help
"""

from playdeck.cli.app import app

__all__ = ["app"]
