"""formpilot run — Fill a web form from an applicant profile.

This is the primary command. It resolves config, API key and profile, opens
the form in a real browser, and runs the reconciliation loop, printing each
pass's snapshot, new fields and planned actions as it goes.

Features:
- TTY-aware output: Rich tables and panels only in interactive terminals;
  plain ASCII line-by-line output in CI/pipes (auto-detected or via --plain).
- --keep-open: leaves the browser open after the run so the user can review
  and submit the form by hand.
"""

from __future__ import annotations

import logging
import os
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from formpilot.cli import configure_logging
from formpilot.config import FormPilotConfig, FormPilotConfigError, describe_profile, load_profile
from formpilot.credentials import find_api_key
from formpilot.engine.distiller import FieldDescriptor
from formpilot.engine.protocols import OracleError
from formpilot.models import DEFAULT_BUDGET_USD

if TYPE_CHECKING:
    from formpilot.engine.reconciler import PassReport, SessionResult

console = Console(stderr=True)

logger = logging.getLogger("formpilot.cli.run")

# ── Environment variable helpers ──────────────────────────────────────────

_ENV_BUDGET_KEY = "FORMPILOT_BUDGET"


def _resolve_budget_default() -> float:
    """Resolve the default budget from the FORMPILOT_BUDGET env var, if set."""
    env_val = os.environ.get(_ENV_BUDGET_KEY)
    if env_val is not None:
        try:
            val = float(env_val)
            if val < 0:
                raise ValueError
            return val
        except ValueError:
            logger.warning(
                "Ignoring invalid %s value: %r (expected a non-negative number)",
                _ENV_BUDGET_KEY,
                env_val,
            )
    return DEFAULT_BUDGET_USD


# ── Plain-mode output helpers ─────────────────────────────────────────────


def _plain_print(msg: str) -> None:
    """Print a plain text line to stderr."""
    print(msg, file=sys.stderr, flush=True)


# ── Shared error printer ──────────────────────────────────────────────────


def _print_error(c: Console, plain: bool, message: str, title: str = "Error") -> None:
    """Print an error message in either plain or Rich mode."""
    if plain:
        _plain_print(f"[{title}] {message}")
    else:
        c.print(Panel(f"[red]{message}[/red]", title=f"[red]{title}[/red]", border_style="red"))


# ── Config builder ────────────────────────────────────────────────────────


def _resolve_project_dir() -> Path:
    """Find the .formpilot/ project directory, searching upward from cwd."""
    current = Path.cwd()
    candidate = current / ".formpilot"
    if candidate.is_dir():
        return candidate
    for parent in current.parents:
        candidate = parent / ".formpilot"
        if candidate.is_dir():
            return candidate
    return current / ".formpilot"


def _build_config(
    project_dir: Path,
    passes: int | None,
    fold_from: int | None,
    budget: float,
    headless: bool | None,
    keep_open: bool | None,
    logs_dir: Path | None,
) -> FormPilotConfig:
    """Build a FormPilotConfig from CLI options, merging with config.yaml if present."""
    config_path = project_dir / "config.yaml"

    if config_path.is_file():
        config = FormPilotConfig.from_file(config_path)
    else:
        config = FormPilotConfig()
        config.project_dir = project_dir
        config.logs_dir = project_dir / "logs"

    # CLI options override config file values
    if passes is not None:
        config.pass_budget = passes
    if fold_from is not None:
        config.fold_from_pass = fold_from
    config.budget = budget
    if headless is not None:
        config.headless = headless
    if keep_open is not None:
        config.keep_open = keep_open
    if logs_dir is not None:
        config.logs_dir = logs_dir

    config.validate()
    return config


def _resolve_profile_path(profile: Path | None, config: FormPilotConfig) -> Path:
    if profile is not None:
        return profile
    if config.profile_path is not None:
        return config.profile_path
    return config.project_dir / "profile.yaml"


# ── Rich output helpers ───────────────────────────────────────────────────


def _print_run_header_rich(
    url: str,
    config: FormPilotConfig,
    profile_lines: list[str],
    api_key_display: str,
) -> None:
    """Print a styled header before the run starts."""
    info_lines = [
        f"[bold]URL:[/bold]       {url}",
        f"[bold]Passes:[/bold]    {config.pass_budget} (folded from pass {config.fold_from_pass})",
        f"[bold]Model:[/bold]     {config.model}",
        f"[bold]Budget:[/bold]    ${config.budget:.2f}",
        f"[bold]Headless:[/bold]  {config.headless}",
        f"[bold]API Key:[/bold]   {api_key_display}",
        "",
    ]
    info_lines.extend(profile_lines)
    console.print()
    console.print(
        Panel(
            "\n".join(info_lines),
            title="[bold cyan]FormPilot Run[/bold cyan]",
            border_style="cyan",
        )
    )
    console.print()


def field_table(fields: list[FieldDescriptor], title: str) -> Table:
    """Rich table of field descriptors."""
    table = Table(title=title, border_style="cyan")
    table.add_column("ID", style="bold")
    table.add_column("Type")
    table.add_column("Label")
    table.add_column("Content")
    table.add_column("Options")
    for f in fields:
        content = "[FILLED]" if f.folded else f.current_content
        option_style = "yellow" if f.option_status != "Ready" else "dim"
        table.add_row(
            f.id,
            f.type,
            escape(f.inferred_label),
            escape(content),
            Text(f.option_status, style=option_style),
        )
    return table


def print_fields_plain(fields: list[FieldDescriptor], title: str) -> None:
    _plain_print(f"{title} ({len(fields)}):")
    for f in fields:
        content = "[FILLED]" if f.folded else f.current_content
        _plain_print(f"  {f.id} [{f.type}] {f.inferred_label} = {content!r} ({f.option_status})")


def _print_pass_rich(report: PassReport) -> None:
    console.rule(f"[bold]Pass {report.pass_number}[/bold] [dim]({report.mode})[/dim]")
    if report.pass_number == 1:
        console.print(field_table(report.fields, "Semantic Snapshot"))
    elif report.new_fields:
        console.print(field_table(report.new_fields, "New Fields Detected"))
    else:
        console.print("[dim]No new fields; page structure is stable.[/dim]")

    if report.page_analysis:
        console.print(Text(report.page_analysis, style="italic"))
    if report.filtered_count:
        console.print(f"[dim]Filtered {report.filtered_count} action(s) for fields already attempted.[/dim]")
    if not report.actions:
        console.print("[green]No new actions needed.[/green]")
        return

    table = Table(title="Plan (new actions)", border_style="magenta")
    table.add_column("ID", style="bold")
    table.add_column("Action")
    table.add_column("Label")
    table.add_column("Value")
    table.add_column("Result")
    results = {r.action_id: r for r in report.results}
    for action in report.actions:
        res = results.get(action.id)
        if res is None:
            outcome = Text("-", style="dim")
        elif res.skipped:
            outcome = Text("SKIP", style="yellow")
        elif res.success:
            outcome = Text("OK", style="green")
        else:
            outcome = Text("FAIL", style="red")
        value = action.value if len(action.value) <= 40 else action.value[:37] + "..."
        table.add_row(action.id, action.type, escape(action.label), escape(value), outcome)
    console.print(table)


def _print_pass_plain(report: PassReport) -> None:
    _plain_print(f"--- Pass {report.pass_number} ({report.mode}) ---")
    if report.pass_number == 1:
        print_fields_plain(report.fields, "Semantic Snapshot")
    elif report.new_fields:
        print_fields_plain(report.new_fields, "New Fields Detected")
    else:
        _plain_print("No new fields; page structure is stable.")
    if report.filtered_count:
        _plain_print(f"Filtered {report.filtered_count} action(s) for fields already attempted.")
    if not report.actions:
        _plain_print("No new actions needed.")
        return
    results = {r.action_id: r for r in report.results}
    for action in report.actions:
        res = results.get(action.id)
        if res is None:
            status = "-"
        elif res.skipped:
            status = "SKIP"
        else:
            status = "OK" if res.success else "FAIL"
        _plain_print(f"  [{status}] {action.type} {action.id} {action.label} -> {action.value}")


def _print_summary_panel_rich(result: SessionResult, report_path: Path | None) -> None:
    """Print the final summary panel in Rich mode."""
    if result.complete:
        border = "green"
        verdict = "[bold green]FORM COMPLETE[/bold green]"
    else:
        border = "yellow"
        verdict = "[bold yellow]PASS BUDGET EXHAUSTED[/bold yellow]"

    cost = result.cost_summary.get("total_cost_usd", 0.0)
    summary_lines = [
        verdict,
        "",
        f"  Passes:    {len(result.passes)}",
        f"  Actions:   {result.actions_succeeded}/{result.actions_attempted} succeeded",
        f"  Duration:  {result.duration_seconds:.1f}s",
        f"  Cost:      ${cost:.4f}",
    ]
    if report_path is not None:
        summary_lines.append(f"  Report:    {report_path}")
    if result.manual_fields:
        summary_lines.extend(["", "[bold]Needs manual completion:[/bold]"])
        for m in result.manual_fields:
            summary_lines.append(f"  - {m.id} {escape(m.label or '(No Label)')} [dim]({m.reason})[/dim]")

    console.print()
    console.print(Panel("\n".join(summary_lines), border_style=border))
    console.print()


def _print_summary_plain(result: SessionResult, report_path: Path | None) -> None:
    """Print a plain-text summary for CI/screen-reader contexts."""
    verdict = "COMPLETE" if result.complete else "PASS BUDGET EXHAUSTED"
    cost = result.cost_summary.get("total_cost_usd", 0.0)
    _plain_print(
        f"RESULT: {verdict} -- {len(result.passes)} pass(es), "
        f"{result.actions_succeeded}/{result.actions_attempted} actions succeeded, "
        f"{result.duration_seconds:.1f}s, ${cost:.4f}"
    )
    if report_path is not None:
        _plain_print(f"Report: {report_path}")
    for m in result.manual_fields:
        _plain_print(f"MANUAL: {m.id} {m.label or '(No Label)'} ({m.reason})")


# ── Main command ──────────────────────────────────────────────────────────


def run(
    url: str = typer.Argument(..., help="URL of the form to fill."),
    profile: Path | None = typer.Option(
        None,
        "--profile",
        "-p",
        help="Applicant profile (YAML or JSON). Default: .formpilot/profile.yaml",
    ),
    passes: int | None = typer.Option(
        None,
        "--passes",
        help="Maximum number of passes.  [default: 2]",
    ),
    fold_from: int | None = typer.Option(
        None,
        "--fold-from",
        help="First pass that hides already-filled fields from the planner.  [default: 2]",
    ),
    budget: float = typer.Option(
        _resolve_budget_default(),
        "--budget",
        "-b",
        help="Maximum planner spend in USD (0 = no cap). Falls back to FORMPILOT_BUDGET env var if set.",
    ),
    headless: bool | None = typer.Option(
        None,
        "--headless/--no-headless",
        help="Run the browser headless or visible (default: visible).",
    ),
    keep_open: bool | None = typer.Option(
        None,
        "--keep-open/--no-keep-open",
        help="Keep the browser open after the run for manual review (default: on).",
    ),
    logs_dir: Path | None = typer.Option(
        None,
        "--logs-dir",
        help="Directory for distilled HTML and session reports.  [default: .formpilot/logs]",
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
    """Fill a web form using an applicant profile.

    Opens the form in a real browser, distills it, asks the planner which
    fields to fill with what, applies the actions, and repeats to catch
    fields revealed by earlier answers.  Nothing is ever submitted.

    \b
    Examples:
      formpilot run https://boards.example.com/jobs/123
      formpilot run https://boards.example.com/jobs/123 --profile me.yaml --passes 3
      formpilot run https://boards.example.com/jobs/123 --headless --no-keep-open --plain
    """
    if verbose:
        configure_logging(verbose=True)

    # Detect non-TTY context (CI/pipe): auto-enable plain mode when not interactive.
    is_tty = sys.stdout.isatty()
    if not is_tty and not plain:
        plain = True

    project_dir = _resolve_project_dir()

    # Build config
    try:
        config = _build_config(
            project_dir=project_dir,
            passes=passes,
            fold_from=fold_from,
            budget=budget,
            headless=headless,
            keep_open=keep_open,
            logs_dir=logs_dir,
        )
    except FormPilotConfigError as exc:
        _print_error(console, plain, str(exc), "Config Error")
        raise typer.Exit(code=2)

    # Resolve API key
    try:
        api_key = find_api_key(project_dir, config_key=config.anthropic_api_key)
        config.anthropic_api_key = api_key.value
    except FormPilotConfigError as exc:
        _print_error(console, plain, str(exc), "API Key Error")
        raise typer.Exit(code=2)

    # Load profile
    try:
        applicant = load_profile(_resolve_profile_path(profile, config))
    except FormPilotConfigError as exc:
        _print_error(console, plain, str(exc), "Profile Error")
        raise typer.Exit(code=2)

    profile_lines = describe_profile(applicant)
    if plain:
        _plain_print(
            f"FormPilot run starting: url={url} passes={config.pass_budget} "
            f"fold-from={config.fold_from_pass} budget=${config.budget:.2f} headless={config.headless}"
        )
        for line in profile_lines:
            _plain_print(line)
    else:
        _print_run_header_rich(url, config, profile_lines, f"{api_key.masked} ({api_key.source})")

    # Import engine (may fail if playwright not installed)
    try:
        from formpilot.engine.browser_runner import BrowserRunner, wait_for_quiescence
        from formpilot.engine.cost_tracker import CostTracker
        from formpilot.engine.planner import ClaudePlanner
        from formpilot.engine.reconciler import ReconciliationLoop
        from formpilot.engine.report_generator import ReportGenerator
    except ImportError as exc:
        _print_error(
            console,
            plain,
            f"Failed to import FormPilot engine: {exc}\n\n"
            "This usually means a dependency is missing.\n"
            "Try: pip install formpilot\n"
            "Then: playwright install chromium",
            "Import Error",
        )
        raise typer.Exit(code=3)

    cost_tracker = CostTracker(budget_usd=config.budget)
    planner = ClaudePlanner(cost_tracker=cost_tracker, api_key=api_key.value, model=config.model)
    runner = BrowserRunner(
        headless=config.headless,
        viewport=config.viewport,
        quiescence_timeout_ms=config.quiescence_timeout_ms,
    )

    start_time = time.monotonic()
    exit_code = 0
    try:
        runner.start()
        page = runner.open(url)
        loop = ReconciliationLoop(
            page=page,
            planner=planner,
            profile=applicant,
            config=config,
            cost_tracker=cost_tracker,
            wait_for_quiescence=wait_for_quiescence,
            on_pass=_print_pass_plain if plain else _print_pass_rich,
        )
        result = loop.run(url)

        report_path = None
        if config.logs_dir is not None:
            report_path, _ = ReportGenerator().write(result, Path(config.logs_dir))
        if plain:
            _print_summary_plain(result, report_path)
        else:
            _print_summary_panel_rich(result, report_path)

        if config.keep_open and not config.headless and is_tty:
            console.input("[bold]Review the form in the browser, then press Enter to close it...[/bold]")
    except KeyboardInterrupt:
        if plain:
            _plain_print("Run interrupted by user.")
        else:
            console.print("\n[yellow]Run interrupted by user.[/yellow]")
        exit_code = 1
    except OracleError as exc:
        _print_error(console, plain, f"{exc}\n\nNo further passes were run.", "Planner Error")
        exit_code = 3
    except Exception as exc:
        logger.exception("Unexpected error during run")
        _print_error(
            console,
            plain,
            f"Unexpected error: {exc}\n\nRun with --verbose for full traceback.",
            "Infrastructure Error",
        )
        exit_code = 3
    finally:
        runner.stop()

    logger.debug("Run finished in %.1fs", time.monotonic() - start_time)
    if exit_code:
        raise typer.Exit(code=exit_code)
