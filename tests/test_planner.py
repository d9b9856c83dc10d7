"""Unit tests for formpilot.engine.planner — ClaudePlanner with a mocked Anthropic client."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from formpilot.engine.cost_tracker import CostTracker
from formpilot.engine.planner import PLANNER_SYSTEM_PROMPT, SPOTLIGHT_ADDENDUM, ClaudePlanner
from formpilot.engine.protocols import FormPlanner, OracleError, Plan, PlanParseError
from formpilot.models import HUMAN_CHECK, MODE_INITIAL, MODE_SPOTLIGHT, MODELS

PLAN_JSON = {
    "page_analysis": "Job application with contact details.",
    "actions": [
        {"id": "sme-0", "label": "First Name", "type": "fill", "value": "Jordan", "reasoning": "basics.firstName"},
        {"id": "sme-3", "label": "Salary", "type": "fill", "value": HUMAN_CHECK, "reasoning": "not in profile"},
    ],
}


def _response(text: str, input_tokens: int = 1200, output_tokens: int = 300) -> SimpleNamespace:
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


@pytest.fixture
def cost_tracker() -> CostTracker:
    return CostTracker(budget_usd=10.0)


@pytest.fixture
def planner(cost_tracker: CostTracker) -> ClaudePlanner:
    p = ClaudePlanner(cost_tracker, api_key="sk-ant-test")
    p._client = MagicMock(name="anthropic")
    p._client.messages.create.return_value = _response(json.dumps(PLAN_JSON))
    return p


# ---------------------------------------------------------------------------
# 1. parse_response()
# ---------------------------------------------------------------------------


class TestParseResponse:
    """parse_response() turns the model's reply into a Plan or raises PlanParseError."""

    def test_plain_json(self):
        plan = ClaudePlanner.parse_response(json.dumps(PLAN_JSON))
        assert isinstance(plan, Plan)
        assert plan.page_analysis == "Job application with contact details."
        assert [a.id for a in plan.actions] == ["sme-0", "sme-3"]
        assert plan.actions[1].needs_human is True

    def test_fenced_json(self):
        raw = "```json\n" + json.dumps(PLAN_JSON, indent=2) + "\n```"
        plan = ClaudePlanner.parse_response(raw)
        assert len(plan.actions) == 2

    def test_empty_action_list_is_valid(self):
        plan = ClaudePlanner.parse_response('{"page_analysis": "All done", "actions": []}')
        assert plan.actions == []

    def test_invalid_json_raises(self):
        with pytest.raises(PlanParseError, match="not valid JSON"):
            ClaudePlanner.parse_response("I filled the form for you!")

    def test_missing_actions_raises(self):
        with pytest.raises(PlanParseError, match="actions"):
            ClaudePlanner.parse_response('{"page_analysis": "x"}')

    def test_action_type_outside_closed_set_raises(self):
        bad = {"page_analysis": "", "actions": [{"id": "sme-0", "type": "submit", "value": ""}]}
        with pytest.raises(PlanParseError, match="Invalid action type"):
            ClaudePlanner.parse_response(json.dumps(bad))

    def test_action_missing_id_raises(self):
        bad = {"page_analysis": "", "actions": [{"type": "fill", "value": "x"}]}
        with pytest.raises(PlanParseError, match="id"):
            ClaudePlanner.parse_response(json.dumps(bad))

    def test_parse_error_is_an_oracle_error(self):
        assert issubclass(PlanParseError, OracleError)


# ---------------------------------------------------------------------------
# 2. propose()
# ---------------------------------------------------------------------------


class TestPropose:
    """propose() sends the snapshot and profile and records the cost."""

    def test_satisfies_planner_protocol(self, planner):
        assert isinstance(planner, FormPlanner)

    def test_request_carries_tree_and_profile(self, planner):
        planner.propose("<form></form>", {"basics": {"firstName": "Jordan"}}, MODE_INITIAL)
        kwargs = planner._client.messages.create.call_args.kwargs
        assert kwargs["model"] == MODELS["planner"]
        content = kwargs["messages"][0]["content"]
        assert "User Profile:" in content
        assert '"firstName": "Jordan"' in content
        assert content.endswith("Target HTML:\n<form></form>")

    def test_initial_mode_uses_base_prompt(self, planner):
        planner.propose("<form></form>", {}, MODE_INITIAL)
        assert planner._client.messages.create.call_args.kwargs["system"] == PLANNER_SYSTEM_PROMPT

    def test_spotlight_mode_adds_filled_instructions(self, planner):
        planner.propose("<form></form>", {}, MODE_SPOTLIGHT)
        system = planner._client.messages.create.call_args.kwargs["system"]
        assert system.endswith(SPOTLIGHT_ADDENDUM)
        assert "[FILLED]" in system

    def test_cost_is_recorded_per_call(self, planner, cost_tracker):
        planner.propose("<form></form>", {}, MODE_SPOTLIGHT)
        [call] = cost_tracker.calls
        assert call.input_tokens == 1200
        assert call.output_tokens == 300
        assert call.mode == MODE_SPOTLIGHT

    def test_transport_failure_raises_oracle_error(self, planner):
        planner._client.messages.create.side_effect = ConnectionError("network down")
        with pytest.raises(OracleError, match="network down"):
            planner.propose("<form></form>", {}, MODE_INITIAL)

    def test_budget_exhaustion_raises_oracle_error(self, planner):
        planner._cost_tracker = CostTracker(budget_usd=0.000001)
        with pytest.raises(OracleError, match="budget"):
            planner.propose("<form></form>", {}, MODE_INITIAL)

    def test_non_text_blocks_are_ignored(self, planner):
        response = _response(json.dumps(PLAN_JSON))
        response.content.insert(0, SimpleNamespace(type="thinking"))
        planner._client.messages.create.return_value = response
        plan = planner.propose("<form></form>", {}, MODE_INITIAL)
        assert len(plan.actions) == 2

    def test_custom_model(self, cost_tracker):
        p = ClaudePlanner(cost_tracker, model="claude-haiku-4-5-20251001")
        assert p.model == "claude-haiku-4-5-20251001"


# ---------------------------------------------------------------------------
# 3. Prompt content
# ---------------------------------------------------------------------------


class TestSystemPrompt:
    """The system prompt states the planner's mapping policy."""

    def test_prompt_names_identifier_and_label_attributes(self):
        assert "data-sme-id" in PLANNER_SYSTEM_PROMPT
        assert "data-sme-label" in PLANNER_SYSTEM_PROMPT

    def test_prompt_forbids_submission(self):
        assert "Submit" in PLANNER_SYSTEM_PROMPT

    def test_prompt_explains_human_check(self):
        assert HUMAN_CHECK in PLANNER_SYSTEM_PROMPT
