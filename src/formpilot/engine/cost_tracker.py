"""FormPilot Cost Tracker — planner spend for one session.

Every planner call is charged against the session budget at the rates in
``formpilot.models.PRICING``.  Spend is broken down by model and by loop
mode (``initial`` / ``spotlight``) so the report shows what the folded
passes cost compared to the first full one.

A budget of ``0`` disables the cap.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
from collections import Counter, defaultdict

from formpilot.models import MODELS, PRICING

logger = logging.getLogger("formpilot.engine.cost_tracker")

# Unknown model ids are billed as the default planner model.
FALLBACK_MODEL = MODELS["planner"]

_PER_TOKEN = 1_000_000


class BudgetExceededError(Exception):
    """Raised when a session's planner spend goes over its budget."""


def price_for(model: str) -> dict[str, float]:
    """Return the ``{"input": .., "output": ..}`` USD-per-1M-token rates for *model*."""
    return PRICING.get(model) or PRICING[FALLBACK_MODEL]


def call_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    rates = price_for(model)
    return (input_tokens * rates["input"] + output_tokens * rates["output"]) / _PER_TOKEN


@dataclasses.dataclass(frozen=True)
class PlannerCall:
    """One charged planner call."""

    model: str
    mode: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    timestamp: str


@dataclasses.dataclass
class CostSummary:
    """Session spend, as stored in the session result and report."""

    total_cost_usd: float
    total_input_tokens: int
    total_output_tokens: int
    call_count: int
    budget_limit_usd: float
    budget_remaining_usd: float
    budget_exceeded: bool
    warning_issued: bool
    calls_by_model: dict[str, int]
    cost_by_model: dict[str, float]
    cost_by_mode: dict[str, float]


class CostTracker:
    """Charges planner calls against a per-session USD budget."""

    def __init__(self, budget_usd: float = 2.0, warn_at_pct: int = 80) -> None:
        self.budget_usd = budget_usd
        self.warn_at_pct = warn_at_pct
        self._calls: list[PlannerCall] = []
        self._spent = 0.0
        self._warned = False

    # -- recording ---------------------------------------------------------

    def record(self, model: str, input_tokens: int, output_tokens: int, mode: str = "") -> PlannerCall:
        """Charge one call and return its record.

        The call is recorded before BudgetExceededError is raised, so the
        summary includes the call that went over.
        """
        call = PlannerCall(
            model=model,
            mode=mode,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=round(call_cost(model, input_tokens, output_tokens), 6),
            timestamp=dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds"),
        )
        self._calls.append(call)
        self._spent += call.cost_usd
        logger.debug(
            "Planner call (%s, %s): %d in / %d out tokens, $%.4f",
            model,
            mode or "-",
            input_tokens,
            output_tokens,
            call.cost_usd,
        )

        if not self.capped:
            return call

        used_pct = self._spent / self.budget_usd * 100
        if not self._warned and used_pct >= self.warn_at_pct:
            self._warned = True
            logger.warning(
                "Planner spend at %.0f%% of budget ($%.4f of $%.2f)",
                used_pct,
                self._spent,
                self.budget_usd,
            )
        if self.budget_exceeded:
            raise BudgetExceededError(
                f"Session budget exceeded: ${self._spent:.4f} > ${self.budget_usd:.2f} limit"
            )
        return call

    # -- state -------------------------------------------------------------

    @property
    def capped(self) -> bool:
        return self.budget_usd > 0

    @property
    def spent(self) -> float:
        return round(self._spent, 6)

    @property
    def remaining(self) -> float:
        if not self.capped:
            return 0.0
        return round(max(0.0, self.budget_usd - self._spent), 6)

    @property
    def budget_exceeded(self) -> bool:
        return self.capped and self._spent > self.budget_usd

    @property
    def warning_issued(self) -> bool:
        return self._warned

    @property
    def calls(self) -> list[PlannerCall]:
        return list(self._calls)

    def get_summary(self) -> CostSummary:
        calls_by_model = Counter(c.model for c in self._calls)
        cost_by_model: defaultdict[str, float] = defaultdict(float)
        cost_by_mode: defaultdict[str, float] = defaultdict(float)
        for c in self._calls:
            cost_by_model[c.model] += c.cost_usd
            if c.mode:
                cost_by_mode[c.mode] += c.cost_usd

        return CostSummary(
            total_cost_usd=self.spent,
            total_input_tokens=sum(c.input_tokens for c in self._calls),
            total_output_tokens=sum(c.output_tokens for c in self._calls),
            call_count=len(self._calls),
            budget_limit_usd=self.budget_usd,
            budget_remaining_usd=self.remaining,
            budget_exceeded=self.budget_exceeded,
            warning_issued=self._warned,
            calls_by_model=dict(calls_by_model),
            cost_by_model={k: round(v, 6) for k, v in cost_by_model.items()},
            cost_by_mode={k: round(v, 6) for k, v in cost_by_mode.items()},
        )
