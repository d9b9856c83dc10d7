"""formpilot init — Initialize a .formpilot/ project directory.

Creates the config template and a sample applicant profile that
``formpilot run`` picks up by default.  Existing files are never overwritten.
"""

from __future__ import annotations

import os
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.tree import Tree

console = Console()

# ── Sample file contents ──────────────────────────────────────────────────

_SAMPLE_CONFIG = """\
# FormPilot project configuration

# Applicant profile (relative to this directory)
profile: profile.yaml

# Maximum planner spend per session (USD, 0 = no cap)
budget: 2.00

# Reconciliation loop
pass_budget: 2      # hard cap on distill -> plan -> execute passes
fold_from_pass: 2   # from this pass on, filled fields are hidden from the planner

# Dropdown option acceptance floor (0..1)
match_threshold: 0.4

# Browser
headless: false
keep_open: true
viewport:
  width: 1280
  height: 900

# Waits (milliseconds)
timings:
  settle_ms: 2000
  post_click_ms: 1000
  pacing_ms: 500
  dropdown_open_ms: 800
  option_wait_ms: 2000
  quiescence_timeout_ms: 10000

# Distilled HTML and session reports
logs_dir: logs

# Uncomment to set your API key here (env var ANTHROPIC_API_KEY takes priority)
# anthropic_api_key: sk-ant-...
"""

_SAMPLE_PROFILE = """\
# Applicant profile. Handed to the planner as-is; add any keys you like.
basics:
  firstName: Jordan
  lastName: Doe
  email: jordan.doe@example.com
  phone: "+1 555 010 0000"
  location: "Austin, TX"
  website: https://jordandoe.dev
  linkedin: https://www.linkedin.com/in/jordandoe

education:
  - school: University of Texas at Austin
    degree: Master of Science
    major: Computer Science
    startDate: "2018-08"
    endDate: "2020-05"

experience:
  - company: Example Corp
    title: Software Engineer
    location: Austin, TX
    startDate: "2020-06"
    endDate: present
    description: Built and ran the internal data platform.

legal:
  authorized_to_work: true
  sponsorship_needed: false
  veteran_status: I am not a protected veteran
  disability_status: I do not wish to answer
  gender: Decline to self-identify
  race: Decline to self-identify
  export_controls: "No"

# Absolute paths to local files
resume_path: /path/to/resume.pdf
cover_letter_path: /path/to/cover_letter.pdf
cover_letter_text: |
  Dear Hiring Team,
  ...
"""

_FILES = {
    "config.yaml": _SAMPLE_CONFIG,
    "profile.yaml": _SAMPLE_PROFILE,
}


def init(
    dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Parent directory for .formpilot/ project. Defaults to current directory.",
    ),
) -> None:
    """Initialize a new FormPilot project directory.

    Creates .formpilot/ with a config.yaml template, a sample profile.yaml
    and a logs/ directory.  Files that already exist are left untouched.
    """
    project_dir = dir.resolve() / ".formpilot"
    (project_dir / "logs").mkdir(parents=True, exist_ok=True)

    created: list[str] = []
    kept: list[str] = []
    for name, content in _FILES.items():
        path = project_dir / name
        if path.exists():
            kept.append(name)
            continue
        path.write_text(content, encoding="utf-8")
        created.append(name)

    # Display result as a Rich tree
    tree = Tree(f"[bold green]{project_dir}[/bold green]", guide_style="dim")
    for name in _FILES:
        if name in created:
            tree.add(f"[cyan]{name}[/cyan]")
        else:
            tree.add(f"[dim]{name} (exists, kept)[/dim]")
    tree.add("[blue]logs/[/blue]")

    console.print()
    console.print(
        Panel(
            tree,
            title="[bold green]FormPilot Initialized[/bold green]",
            border_style="green",
        )
    )

    api_key_set = bool(os.environ.get("ANTHROPIC_API_KEY"))

    console.print()
    console.print("[dim]Next steps:[/dim]")
    console.print("  1. Edit [cyan].formpilot/profile.yaml[/cyan] with your details and file paths")
    console.print("  2. Run [bold]playwright install chromium[/bold] to set up the browser")

    if not api_key_set:
        console.print()
        console.print(
            Panel(
                "[bold yellow]Set your API key before running:[/bold yellow]\n\n"
                "  export ANTHROPIC_API_KEY=sk-ant-...\n\n"
                "Get a key at: https://console.anthropic.com/\n\n"
                "You can also store it in [cyan].formpilot/config.yaml[/cyan]:\n"
                "  [dim]anthropic_api_key: sk-ant-...[/dim]",
                title="[yellow]API Key Required[/yellow]",
                border_style="yellow",
            )
        )
    else:
        console.print("  3. [green]ANTHROPIC_API_KEY already set ✓[/green]")

    console.print()
    console.print("  Run: [bold]formpilot run <form-url>[/bold]")
    console.print()
