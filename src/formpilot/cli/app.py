"""FormPilot CLI — Typer application and subcommand registration.

``formpilot run`` fills a form, ``formpilot distill`` shows what the
planner would see, ``formpilot init`` scaffolds a ``.formpilot/`` project.
"""

from __future__ import annotations

from importlib import metadata

import typer
from rich.console import Console
from rich.table import Table

from formpilot import __version__
from formpilot.cli import configure_logging
from formpilot.cli.distill import distill
from formpilot.cli.init_cmd import init
from formpilot.cli.run import run

TAGLINE = "Fills long web forms from your profile, pass after pass. Never submits."

# Third-party packages whose versions --version reports.
_STACK = ("playwright", "anthropic", "typer", "rich", "pyyaml")

console = Console()


def _installed(dist: str) -> str:
    try:
        return metadata.version(dist)
    except metadata.PackageNotFoundError:
        return "not installed"


def _version_callback(value: bool) -> None:
    if not value:
        return
    table = Table(title=f"FormPilot v{__version__}", caption=TAGLINE, show_header=False, box=None)
    table.add_column(style="cyan")
    table.add_column()
    for dist in _STACK:
        table.add_row(dist, _installed(dist))
    console.print(table)
    raise typer.Exit()


app = typer.Typer(
    name="formpilot",
    help=f"FormPilot\n\n{TAGLINE}",
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show FormPilot and dependency versions, then exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging for every subcommand.",
    ),
) -> None:
    """FormPilot -- multi-pass web form filling driven by Claude."""
    if verbose:
        configure_logging(verbose=True)


app.command(name="init", help="Initialize a .formpilot/ project directory.")(init)
app.command(name="run", help="Fill a web form from your profile.")(run)
app.command(name="distill", help="Distill a form and print its fields (zero cost).")(distill)
