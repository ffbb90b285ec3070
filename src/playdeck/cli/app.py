"""
Root Typer application for the playdeck CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from playdeck.core.logging import configure_logging
from playdeck.core.settings import get_settings

app = Typer(
    name="playdeck",
    help="playdeck — browse a demo catalog, launch runs and track them.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from playdeck import __version__

        try:
            v = pkg_version("playdeck")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"playdeck {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """playdeck CLI — sync the catalog, create and run demo instances."""
    settings = get_settings()
    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        json_format=settings.json_logs,
        service="playdeck-cli",
    )


# ── Sub-command registration ─────────────────────────────────────────────

from playdeck.cli.catalog import app as demos_app  # noqa: E402
from playdeck.cli.catalog import sync  # noqa: E402
from playdeck.cli.instances import app as instances_app  # noqa: E402

app.command("sync")(sync)
app.add_typer(demos_app, name="demos", help="Catalog demo definitions.")
app.add_typer(instances_app, name="instances", help="Demo instance management.")
