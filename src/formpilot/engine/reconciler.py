"""FormPilot Reconciliation Loop — distill, plan, execute, settle, repeat.

Each pass re-observes the live page, so fields revealed by earlier answers
(a "No" that opens a follow-up question) are picked up by the next pass.
Pass 1 sends the full snapshot to the planner; later passes fold filled
fields into placeholders so the planner only sees what is left.

All cross-pass state (identifier counter, seen set, execution ledger) lives
in a SessionContext owned by one loop instance.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from formpilot.config import FormPilotConfig
from formpilot.engine.action_executor import FormActionExecutor
from formpilot.engine.cost_tracker import BudgetExceededError, CostTracker
from formpilot.engine.differ import diff_fields
from formpilot.engine.distiller import Distiller, FieldDescriptor, IdentifierAllocator, SemanticSnapshot
from formpilot.engine.protocols import Action, ActionResult, FormPlanner, OracleError
from formpilot.models import MODE_INITIAL, MODE_SPOTLIGHT

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = logging.getLogger("formpilot.engine.reconciler")

TERMINATION_COMPLETE = "complete"
TERMINATION_BUDGET = "pass_budget_exhausted"

# Descriptor types that are never reported as fields awaiting manual input
_NON_INPUT_TYPES = frozenset({"button", "submit", "reset", "image"})


@dataclasses.dataclass
class SessionContext:
    """Cross-pass state of one form-filling session.

    ``ledger`` holds every field id already forwarded to the executor and
    only ever grows.  ``seen`` holds every field id observed in an earlier
    snapshot and is used for reporting only.
    """

    allocator: IdentifierAllocator = dataclasses.field(default_factory=IdentifierAllocator)
    ledger: set[str] = dataclasses.field(default_factory=set)
    seen: set[str] = dataclasses.field(default_factory=set)

    def record(self, field_ids: list[str]) -> None:
        self.ledger.update(field_ids)

    def is_ledgered(self, field_id: str) -> bool:
        return field_id in self.ledger


@dataclasses.dataclass
class PassReport:
    """What happened in one pass of the loop."""

    pass_number: int
    mode: str  # initial | spotlight
    fields: list[FieldDescriptor]
    new_fields: list[FieldDescriptor]
    proposed_count: int
    filtered_count: int  # actions dropped because their field was already attempted
    actions: list[Action] = dataclasses.field(default_factory=list)
    results: list[ActionResult] = dataclasses.field(default_factory=list)
    page_analysis: str = ""
    unknown_ids: list[str] = dataclasses.field(default_factory=list)
    artifact: str | None = None
    duration_seconds: float = 0.0

    @property
    def field_count(self) -> int:
        return len(self.fields)

    @property
    def new_field_ids(self) -> list[str]:
        return [f.id for f in self.new_fields]

    @property
    def new_action_count(self) -> int:
        return len(self.actions)


@dataclasses.dataclass(frozen=True)
class ManualField:
    """A field left for the user to complete by hand."""

    id: str
    label: str
    reason: str  # human_check | failed | skipped | not attempted


@dataclasses.dataclass
class SessionResult:
    """Complete result of one form-filling session."""

    url: str
    passes: list[PassReport]
    ledger: list[str]
    termination_reason: str
    manual_fields: list[ManualField]
    start_time: str
    end_time: str
    duration_seconds: float
    cost_summary: dict[str, Any] = dataclasses.field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return self.termination_reason == TERMINATION_COMPLETE

    @property
    def actions_attempted(self) -> int:
        return sum(len(p.results) for p in self.passes)

    @property
    def actions_succeeded(self) -> int:
        return sum(1 for p in self.passes for r in p.results if r.success and not r.skipped)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "termination_reason": self.termination_reason,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_seconds": self.duration_seconds,
            "ledger": list(self.ledger),
            "passes": [
                {
                    "pass_number": p.pass_number,
                    "mode": p.mode,
                    "field_count": p.field_count,
                    "new_field_ids": p.new_field_ids,
                    "proposed_count": p.proposed_count,
                    "filtered_count": p.filtered_count,
                    "unknown_ids": list(p.unknown_ids),
                    "page_analysis": p.page_analysis,
                    "artifact": p.artifact,
                    "duration_seconds": p.duration_seconds,
                    "results": [dataclasses.asdict(r) for r in p.results],
                }
                for p in self.passes
            ],
            "manual_fields": [dataclasses.asdict(m) for m in self.manual_fields],
            "cost_summary": self.cost_summary,
        }


PassObserver = Callable[[PassReport], None]
QuiescenceWaiter = Callable[["Page", int], None]


class ReconciliationLoop:
    """Runs passes of distill -> plan -> filter -> execute -> settle on one page.

    The pass budget is a hard ceiling: the loop never runs more than
    ``config.pass_budget`` passes, however many actions the planner keeps
    proposing.  Planner failures propagate as OracleError; action failures
    never do.
    """

    def __init__(
        self,
        page: Page,
        planner: FormPlanner,
        profile: dict[str, Any],
        config: FormPilotConfig | None = None,
        executor: FormActionExecutor | None = None,
        context: SessionContext | None = None,
        cost_tracker: CostTracker | None = None,
        wait_for_quiescence: QuiescenceWaiter | None = None,
        on_pass: PassObserver | None = None,
    ) -> None:
        self._page = page
        self._planner = planner
        self._profile = profile
        self._config = config or FormPilotConfig()
        self._executor = executor or FormActionExecutor(
            page,
            post_click_ms=self._config.post_click_ms,
            pacing_ms=self._config.pacing_ms,
            dropdown_open_ms=self._config.dropdown_open_ms,
            option_wait_ms=self._config.option_wait_ms,
            match_threshold=self._config.match_threshold,
        )
        self.context = context or SessionContext()
        self._distiller = Distiller(allocator=self.context.allocator)
        self._cost_tracker = cost_tracker
        self._wait_for_quiescence = wait_for_quiescence
        self._on_pass = on_pass

    def run(self, url: str = "") -> SessionResult:
        """Run passes until the planner has nothing new or the budget is spent."""
        start = time.monotonic()
        start_time = dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds")
        passes: list[PassReport] = []
        termination = TERMINATION_BUDGET
        last_snapshot: SemanticSnapshot | None = None

        for pass_number in range(1, self._config.pass_budget + 1):
            report, last_snapshot = self.run_pass(pass_number)
            passes.append(report)
            if self._on_pass is not None:
                self._on_pass(report)
            if not report.actions:
                termination = TERMINATION_COMPLETE
                logger.info("Pass %d: no new actions. Form complete for automatable fields.", pass_number)
                break
        else:
            logger.info(
                "Pass budget of %d exhausted; remaining fields are left for manual completion",
                self._config.pass_budget,
            )
            if passes[-1].actions:
                last_snapshot = self._closing_snapshot()

        manual = self._collect_manual_fields(
            passes,
            last_snapshot if termination == TERMINATION_BUDGET else None,
        )
        if manual:
            logger.warning("%d field(s) need manual completion", len(manual))

        return SessionResult(
            url=url,
            passes=passes,
            ledger=sorted(self.context.ledger, key=_id_sort_key),
            termination_reason=termination,
            manual_fields=manual,
            start_time=start_time,
            end_time=dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds"),
            duration_seconds=round(time.monotonic() - start, 2),
            cost_summary=(dataclasses.asdict(self._cost_tracker.get_summary()) if self._cost_tracker else {}),
        )

    def run_pass(self, pass_number: int) -> tuple[PassReport, SemanticSnapshot]:
        """Run a single pass and return its report and the snapshot it planned from."""
        pass_start = time.monotonic()
        fold = pass_number >= self._config.fold_from_pass
        mode = MODE_SPOTLIGHT if fold else MODE_INITIAL
        logger.info("--- Pass %d (%s) ---", pass_number, mode)

        snapshot = self._distiller.distill_page(self._page, fold_filled=fold)
        new_fields, self.context.seen = diff_fields(snapshot.fields, self.context.seen)
        logger.info(
            "Pass %d: %d field(s), %d new",
            pass_number,
            len(snapshot.fields),
            len(new_fields),
        )
        artifact = self._write_artifact(pass_number, snapshot.serialized_tree)

        try:
            plan = self._planner.propose(snapshot.serialized_tree, self._profile, mode)
        except OracleError:
            logger.exception("Planner failed on pass %d", pass_number)
            raise
        except BudgetExceededError as exc:
            logger.error("Planner budget exhausted on pass %d: %s", pass_number, exc)
            raise OracleError(str(exc)) from exc

        known = snapshot.field_ids
        unknown = [a.id for a in plan.actions if a.id not in known]
        for field_id in unknown:
            logger.warning("Planner referenced unknown field id %s", field_id)

        fresh = [a for a in plan.actions if not self.context.is_ledgered(a.id)]
        filtered = len(plan.actions) - len(fresh)
        if filtered:
            logger.info("Filtered %d action(s) for already-attempted fields", filtered)

        report = PassReport(
            pass_number=pass_number,
            mode=mode,
            fields=snapshot.fields,
            new_fields=new_fields,
            proposed_count=len(plan.actions),
            filtered_count=filtered,
            actions=fresh,
            page_analysis=plan.page_analysis,
            unknown_ids=unknown,
            artifact=artifact,
        )
        if not fresh:
            report.duration_seconds = round(time.monotonic() - pass_start, 2)
            return report, snapshot

        self.context.record([a.id for a in fresh])
        report.results = self._executor.execute_plan(plan.with_actions(fresh))

        self._settle()
        report.duration_seconds = round(time.monotonic() - pass_start, 2)
        return report, snapshot

    def _closing_snapshot(self) -> SemanticSnapshot:
        """Distill once more after the last pass so fields it revealed are accounted for.

        No planner call is made.
        """
        snapshot = self._distiller.distill_page(self._page, fold_filled=True)
        revealed, self.context.seen = diff_fields(snapshot.fields, self.context.seen)
        if revealed:
            logger.info("%d field(s) appeared after the last pass", len(revealed))
        return snapshot

    def _settle(self) -> None:
        """Give dependent fields time to render before the next distillation."""
        logger.debug("Waiting for dynamic updates...")
        self._page.wait_for_timeout(self._config.settle_ms)
        if self._wait_for_quiescence is not None:
            self._wait_for_quiescence(self._page, self._config.quiescence_timeout_ms)

    def _write_artifact(self, pass_number: int, serialized_tree: str) -> str | None:
        logs_dir = self._config.logs_dir
        if logs_dir is None:
            return None
        path = Path(logs_dir) / f"pass_{pass_number}_distill.html"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(serialized_tree, encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to write %s: %s", path, exc)
            return None
        return str(path)

    def _collect_manual_fields(
        self,
        passes: list[PassReport],
        last_snapshot: SemanticSnapshot | None,
    ) -> list[ManualField]:
        """Every field the session did not fill itself, in the order first met."""
        manual: dict[str, ManualField] = {}
        for report in passes:
            for result in report.results:
                if not result.needs_manual or result.action_id in manual:
                    continue
                if result.detail == "human_check":
                    reason = "human_check"
                elif result.skipped:
                    reason = "skipped"
                else:
                    reason = "failed"
                manual[result.action_id] = ManualField(id=result.action_id, label=result.label, reason=reason)

        if last_snapshot is not None:
            for field in last_snapshot.fields:
                if field.id in manual or self.context.is_ledgered(field.id):
                    continue
                if field.folded or field.filled or field.type in _NON_INPUT_TYPES:
                    continue
                manual[field.id] = ManualField(id=field.id, label=field.inferred_label, reason="not attempted")

        return list(manual.values())


def _id_sort_key(field_id: str) -> tuple[int, str]:
    """Order sme-2 before sme-10."""
    _, _, suffix = field_id.rpartition("-")
    return (int(suffix), field_id) if suffix.isdigit() else (1 << 30, field_id)
