"""FormPilot Planner — maps an applicant profile onto a distilled form.

Sends the distilled HTML and the profile to a Claude model and parses the
returned JSON into a Plan.  The planner is stateless between passes: each
call sees only the current snapshot, so the reconciliation loop's ledger is
what keeps it from re-filling fields.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from formpilot.engine.cost_tracker import BudgetExceededError, CostTracker
from formpilot.engine.protocols import OracleError, Plan, PlanParseError
from formpilot.models import ACTION_TYPES, HUMAN_CHECK, MODE_INITIAL, MODE_SPOTLIGHT, MODELS

logger = logging.getLogger("formpilot.engine.planner")

# JSON schema for the plan response, embedded in the system prompt
RESPONSE_SCHEMA = """{
  "page_analysis": "Brief reading of the form and what it asks for",
  "actions": [
    {
      "id": "sme-12",
      "label": "Question or label of the field",
      "type": "fill|smart_select|file_upload|radio|checkbox|click",
      "value": "Text, option intent, absolute file path, Yes/No, or human_check",
      "reasoning": "Short reason for this mapping"
    }
  ]
}"""

PLANNER_SYSTEM_PROMPT = f"""You are an expert form-filling agent driving a web browser.
Your goal is to map a user profile onto a distilled HTML form.

## Input
- You receive a distilled HTML string.
- Every interactive field carries `data-sme-id`, its unique selector. You MUST use it as the action id.
- `data-sme-label` is an enhanced label path (e.g. "Resume/CV > Attach"). Trust it over the field's inner text.

## Mapping
- Map profile data to fields using `data-sme-label` or the visible labels.
- REQUIRED FIELDS (*): generate an action for every required field. Never skip a required field.
- Missing data for a required field:
  - If you can make a safe guess from the user context (e.g. "How did you hear about us" -> "LinkedIn",
    export controls -> "No"), do so and prefix the reasoning with "[GUESS]".
  - Otherwise set the value to "{HUMAN_CHECK}".

## Field types
- Text input or textarea: type "fill".
- Dropdown (combobox/select): type "smart_select". Output the exact intent string from the profile;
  never guess an option id.
- Radio/checkbox: type "radio" or "checkbox", value "Yes"/"No" or the profile value.
- Resume/CV: type "file_upload" with the actual absolute path from the profile.
  Never output the key name (e.g. "resume_path") as the value.
- Cover letter, open questions, code samples (anything other than the resume):
  1. Prefer text. If there is an "Enter manually" button use "click"; if there is a textarea use "fill"
     (with `cover_letter_text` or `questions` from the profile).
  2. Only when no manual option exists, use "file_upload" with the actual `cover_letter_path`.

## Exclusions
- Do NOT interact with "Submit", "Save" or "Next" buttons.
- Do NOT interact with "Apply with LinkedIn/Indeed" buttons.

## Output
Respond with ONLY valid JSON matching this schema:
{RESPONSE_SCHEMA}
Allowed action types: {", ".join(ACTION_TYPES)}.
Give a brief page_analysis first, and a short reasoning for every action."""

SPOTLIGHT_ADDENDUM = """
## Follow-up pass
Fields shown as [FILLED] are already done. Do not emit actions for them.
Only the remaining fields need actions, usually ones revealed by earlier answers."""


class ClaudePlanner:
    """Planner backed by Claude via the Anthropic Python SDK.

    Implements the FormPlanner protocol.
    """

    def __init__(
        self,
        cost_tracker: CostTracker,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
    ) -> None:
        self._cost_tracker = cost_tracker
        self._api_key = api_key
        self._model = model or MODELS["planner"]
        self._max_tokens = max_tokens
        self._client: Any | None = None  # Lazy-initialised Anthropic client

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self) -> Any:
        """Return the cached Anthropic client, creating it lazily on first use."""
        if self._client is None:
            import anthropic

            kwargs: dict[str, Any] = {"max_retries": 5, "timeout": 60.0}
            if self._api_key:
                kwargs["api_key"] = self._api_key
            self._client = anthropic.Anthropic(**kwargs)
        return self._client

    @staticmethod
    def system_prompt(mode: str) -> str:
        if mode == MODE_SPOTLIGHT:
            return PLANNER_SYSTEM_PROMPT + SPOTLIGHT_ADDENDUM
        return PLANNER_SYSTEM_PROMPT

    @staticmethod
    def build_user_message(serialized_tree: str, profile: dict[str, Any]) -> str:
        return (
            f"User Profile:\n{json.dumps(profile, indent=2, ensure_ascii=False, default=str)}"
            f"\n\nTarget HTML:\n{serialized_tree}"
        )

    def propose(self, serialized_tree: str, profile: dict[str, Any], mode: str = MODE_INITIAL) -> Plan:
        """Ask the model for a plan covering *serialized_tree*.

        Raises OracleError on transport or budget failure and PlanParseError
        when the reply is not a valid plan.
        """
        logger.info("Planner: thinking (%s, %s mode)...", self._model, mode)
        client = self._get_client()
        try:
            response = client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=self.system_prompt(mode),
                messages=[{"role": "user", "content": self.build_user_message(serialized_tree, profile)}],
            )
        except Exception as exc:
            logger.error("Anthropic API call failed: %s", exc)
            raise OracleError(f"Planner call failed: {exc}") from exc

        usage = response.usage
        try:
            self._cost_tracker.record(
                model=self._model,
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                mode=mode,
            )
        except BudgetExceededError as exc:
            raise OracleError(str(exc)) from exc

        raw_text = ""
        for block in response.content:
            if hasattr(block, "text"):
                raw_text += block.text

        plan = self.parse_response(raw_text)
        logger.info("Planner proposed %d action(s)", len(plan.actions))
        return plan

    @staticmethod
    def parse_response(raw_text: str) -> Plan:
        """Parse the model's JSON reply into a Plan.

        Handles replies wrapped in markdown code fences.  Raises
        PlanParseError on anything that is not a structurally valid plan.
        """
        text = raw_text.strip()

        if text.startswith("```"):
            lines = text.split("\n")
            if lines and lines[0].strip().startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            text = "\n".join(lines).strip()

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse planner response: %s\nRaw: %s", exc, raw_text[:500])
            raise PlanParseError(f"Planner response is not valid JSON: {exc}") from exc

        return Plan.from_dict(data)
