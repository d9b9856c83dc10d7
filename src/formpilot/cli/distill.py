"""formpilot distill — Show what the planner would see, without calling it.

Opens the form, runs one distillation and prints the field table.  Useful
for checking label inference on a new site: fields without a label and
dropdowns whose options only appear at runtime are called out.  Zero cost.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import typer
from rich.console import Console

from formpilot.cli import configure_logging
from formpilot.cli.run import _plain_print, _print_error, field_table, print_fields_plain
from formpilot.engine.distiller import NO_LABEL, OPTION_STATUS_RUNTIME

console = Console(stderr=True)

logger = logging.getLogger("formpilot.cli.distill")


def distill(
    url: str = typer.Argument(..., help="URL of the form to distill."),
    fold: bool = typer.Option(
        False,
        "--fold",
        help="Replace already-filled fields with [FILLED] markers.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the distilled HTML to this file.",
    ),
    headless: bool = typer.Option(
        True,
        "--headless/--no-headless",
        help="Run the browser headless (default) or visible.",
    ),
    plain: bool = typer.Option(
        False,
        "--plain",
        help="Use plain ASCII output -- no Rich formatting, colors, or Unicode.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging.",
    ),
) -> None:
    """Distill a form once and print its fields (no planner, no cost).

    \b
    Examples:
      formpilot distill https://boards.example.com/jobs/123
      formpilot distill https://boards.example.com/jobs/123 -o form.html
    """
    if verbose:
        configure_logging(verbose=True)

    if not sys.stdout.isatty() and not plain:
        plain = True

    try:
        from formpilot.engine.browser_runner import BrowserRunner
        from formpilot.engine.distiller import Distiller
    except ImportError as exc:
        _print_error(console, plain, f"Failed to import FormPilot engine: {exc}", "Import Error")
        raise typer.Exit(code=3)

    runner = BrowserRunner(headless=headless)
    try:
        runner.start()
        page = runner.open(url)
        snapshot = Distiller().distill_page(page, fold_filled=fold)
    except Exception as exc:
        logger.exception("Distillation failed")
        _print_error(console, plain, f"Distillation failed: {exc}", "Infrastructure Error")
        raise typer.Exit(code=3)
    finally:
        runner.stop()

    unlabeled = [f for f in snapshot.fields if f.inferred_label == NO_LABEL]
    runtime = [f for f in snapshot.fields if f.option_status == OPTION_STATUS_RUNTIME]

    if plain:
        print_fields_plain(snapshot.fields, "Semantic Snapshot")
        _plain_print(f"Fields without a label: {len(unlabeled)}")
        _plain_print(f"Dropdowns needing runtime fetch: {len(runtime)}")
    else:
        console.print(field_table(snapshot.fields, "Semantic Snapshot"))
        console.print(
            f"[bold]{len(snapshot.fields)}[/bold] field(s), "
            f"[yellow]{len(unlabeled)}[/yellow] without a label, "
            f"[yellow]{len(runtime)}[/yellow] dropdown(s) needing runtime fetch"
        )

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(snapshot.serialized_tree, encoding="utf-8")
        if plain:
            _plain_print(f"Distilled HTML written to: {output}")
        else:
            console.print(f"[dim]Distilled HTML written to: {output}[/dim]")
