"""FormPilot Report Generator — Produces session report artifacts.

Generates a markdown report from a SessionResult: per-pass summary, the
actions taken, fields left for manual completion, and cost breakdown.  The
same result is also written as JSON for tooling.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from formpilot.engine.reconciler import SessionResult

logger = logging.getLogger("formpilot.engine.report_generator")

REPORT_FILENAME = "session-report.md"
RESULT_FILENAME = "session-result.json"


class ReportGenerator:
    """Generates markdown reports from session results."""

    def generate(self, result: SessionResult) -> str:
        """Generate a complete report in markdown format.

        Args:
            result: The SessionResult to report on.

        Returns:
            Complete markdown report as a string.
        """
        sections = [
            self._header(result),
            self._summary(result),
            self._passes_table(result),
            self._actions_table(result),
            self._manual_section(result),
            self._cost_section(result),
        ]
        return "\n\n".join(s for s in sections if s)

    def write(self, result: SessionResult, logs_dir: Path) -> tuple[Path, Path]:
        """Write the markdown report and the JSON result under *logs_dir*."""
        logs_dir.mkdir(parents=True, exist_ok=True)
        report_path = logs_dir / REPORT_FILENAME
        report_path.write_text(self.generate(result), encoding="utf-8")
        result_path = logs_dir / RESULT_FILENAME
        result_path.write_text(json.dumps(result.to_dict(), indent=2, default=str), encoding="utf-8")
        logger.info("Session report written to %s", report_path)
        return report_path, result_path

    def _header(self, r: SessionResult) -> str:
        verdict = "COMPLETE" if r.complete else "PASS BUDGET EXHAUSTED"
        return (
            f"# FormPilot Session Report\n"
            f"\n"
            f"**URL:** {r.url or '-'}\n"
            f"**Date:** {r.start_time}\n"
            f"**Outcome:** {verdict}"
        )

    def _summary(self, r: SessionResult) -> str:
        return (
            f"## Summary\n"
            f"- Passes: {len(r.passes)}\n"
            f"- Fields attempted: {len(r.ledger)}\n"
            f"- Actions succeeded: {r.actions_succeeded}/{r.actions_attempted}\n"
            f"- Manual completion needed: {len(r.manual_fields)}\n"
            f"- Duration: {r.duration_seconds:.1f}s"
        )

    def _passes_table(self, r: SessionResult) -> str:
        lines = [
            "## Passes",
            "| Pass | Mode | Fields | New | Proposed | Filtered | Executed |",
            "|------|------|--------|-----|----------|----------|----------|",
        ]
        for p in r.passes:
            lines.append(
                f"| {p.pass_number} | {p.mode} | {p.field_count} | {len(p.new_fields)} "
                f"| {p.proposed_count} | {p.filtered_count} | {p.new_action_count} |"
            )
        return "\n".join(lines)

    def _actions_table(self, r: SessionResult) -> str:
        rows = [(p.pass_number, res) for p in r.passes for res in p.results]
        if not rows:
            return "## Actions\n\nNo actions executed."
        lines = [
            "## Actions",
            "| Pass | Field | Label | Action | Result | Notes |",
            "|------|-------|-------|--------|--------|-------|",
        ]
        for pass_number, res in rows:
            if res.skipped:
                outcome = "SKIPPED"
            elif res.success:
                outcome = "OK"
            else:
                outcome = "FAIL"
            notes = res.error or res.detail or ""
            if len(notes) > 80:
                notes = notes[:77] + "..."
            label = res.label.replace("|", "/")
            lines.append(f"| {pass_number} | {res.action_id} | {label} | {res.action} | {outcome} | {notes} |")
        return "\n".join(lines)

    def _manual_section(self, r: SessionResult) -> str:
        if not r.manual_fields:
            return "## Manual Completion\n\nNothing left to complete by hand."
        lines = ["## Manual Completion", ""]
        for m in r.manual_fields:
            lines.append(f"- **{m.id}** {m.label or '(No Label)'} ({m.reason})")
        return "\n".join(lines)

    def _cost_section(self, r: SessionResult) -> str:
        cs = r.cost_summary
        if not cs:
            return ""
        lines = [
            "## Cost Breakdown",
            f"- **Total cost:** ${cs.get('total_cost_usd', 0):.4f}",
            f"- **Budget limit:** ${cs.get('budget_limit_usd', 0):.2f}",
            f"- **Budget remaining:** ${cs.get('budget_remaining_usd', 0):.4f}",
            f"- **API calls:** {cs.get('call_count', 0)}",
        ]
        calls_by_model = cs.get("calls_by_model", {})
        cost_by_model = cs.get("cost_by_model", {})
        if calls_by_model:
            lines.append("- **By model:**")
            for model, count in calls_by_model.items():
                cost = cost_by_model.get(model, 0.0)
                # Shorten model name for display
                short_name = model.split("-")[1] if "-" in model else model
                lines.append(f"  - {short_name}: {count} calls, ${cost:.4f}")
        cost_by_mode = cs.get("cost_by_mode", {})
        if cost_by_mode:
            lines.append("- **By mode:**")
            for mode, cost in cost_by_mode.items():
                lines.append(f"  - {mode}: ${cost:.4f}")
        return "\n".join(lines)
