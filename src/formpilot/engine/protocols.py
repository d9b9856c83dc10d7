"""Form-filling protocols.

These types define the contract between FormPilot's reconciliation loop and
the planner that turns a distilled form into actions.  The loop depends only
on FormPlanner, so any model (Claude, a local model, a scripted test double)
can be injected.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Protocol, runtime_checkable

from formpilot.models import ACTION_TYPES, HUMAN_CHECK


class OracleError(Exception):
    """Raised when the planner call fails.  Fatal for the current pass."""

    pass


class PlanParseError(OracleError):
    """Raised when the planner response is not a structurally valid plan."""

    pass


@dataclasses.dataclass(frozen=True)
class Action:
    """One field action proposed by the planner."""

    id: str  # data-sme-id of the target element
    label: str  # question/label the planner associated with the field
    type: str  # fill | smart_select | file_upload | radio | checkbox | click
    value: str  # text, option intent, file path, or HUMAN_CHECK
    reasoning: str = ""

    @property
    def needs_human(self) -> bool:
        return self.value == HUMAN_CHECK

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Action:
        """Build an Action from a decoded JSON object.

        Raises PlanParseError when a required key is missing or the action
        type is outside the closed set.
        """
        if not isinstance(data, dict):
            raise PlanParseError(f"Action must be an object, got {type(data).__name__}")
        missing = [k for k in ("id", "type", "value") if k not in data]
        if missing:
            raise PlanParseError(f"Action is missing required keys: {', '.join(missing)}")
        action_type = str(data["type"]).strip()
        if action_type not in ACTION_TYPES:
            raise PlanParseError(
                f"Invalid action type {action_type!r} for {data.get('id')!r}; "
                f"expected one of: {', '.join(ACTION_TYPES)}"
            )
        return cls(
            id=str(data["id"]).strip(),
            label=str(data.get("label") or ""),
            type=action_type,
            value="" if data["value"] is None else str(data["value"]),
            reasoning=str(data.get("reasoning") or ""),
        )


@dataclasses.dataclass
class Plan:
    """Ordered actions for one pass, plus the planner's reading of the page."""

    page_analysis: str
    actions: list[Action] = dataclasses.field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Plan:
        if not isinstance(data, dict):
            raise PlanParseError(f"Plan must be an object, got {type(data).__name__}")
        actions = data.get("actions")
        if not isinstance(actions, list):
            raise PlanParseError("Plan is missing an 'actions' list")
        return cls(
            page_analysis=str(data.get("page_analysis") or ""),
            actions=[Action.from_dict(a) for a in actions],
        )

    def with_actions(self, actions: list[Action]) -> Plan:
        """Return a copy of this plan carrying only *actions*."""
        return Plan(page_analysis=self.page_analysis, actions=list(actions))


@dataclasses.dataclass
class ActionResult:
    """Result of applying a single action to the page."""

    action_id: str
    action: str
    label: str
    success: bool
    skipped: bool = False
    error: str | None = None
    detail: str = ""  # e.g. matched option text, skip reason
    duration_ms: float = 0.0

    @property
    def needs_manual(self) -> bool:
        """True when the field was left untouched or failed and a human should finish it."""
        return self.skipped or not self.success


@runtime_checkable
class FormPlanner(Protocol):
    """Reasoning oracle -- receives a distilled form, returns a plan.

    ``mode`` is "initial" for a full snapshot and "spotlight" for a folded one.
    Implementations raise OracleError (or PlanParseError) on failure.
    """

    def propose(self, serialized_tree: str, profile: dict[str, Any], mode: str) -> Plan: ...
