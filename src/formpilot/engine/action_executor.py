"""FormPilot Action Executor -- Applies planned field actions to the page.

Maps each action type (fill, smart_select, file_upload, radio, checkbox,
click) to concrete Playwright interactions on the element carrying the
action's ``data-sme-id``.  Dropdowns go through the option resolver and the
intent matcher.

One failing action never stops the rest of the plan: every outcome, good or
bad, comes back as an ActionResult.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from formpilot.engine.dom_tree import ID_ATTR
from formpilot.engine.matcher import find_best_match
from formpilot.engine.option_resolver import OPTION_STRATEGIES, OptionStrategy, resolve_options
from formpilot.engine.protocols import Action, ActionResult, Plan
from formpilot.models import (
    DEFAULT_DROPDOWN_OPEN_MS,
    DEFAULT_MATCH_THRESHOLD,
    DEFAULT_OPTION_WAIT_MS,
    DEFAULT_PACING_MS,
    DEFAULT_POST_CLICK_MS,
)

if TYPE_CHECKING:
    from playwright.sync_api import Locator, Page

logger = logging.getLogger("formpilot.engine.action_executor")

# Inner toggles that open a dropdown more reliably than its outer container
# (Greenhouse renders button[aria-label="Toggle flyout"], React-Select an indicator).
DROPDOWN_TOGGLE_SELECTOR = 'button[aria-label="Toggle flyout"], [class*="indicator"]'

_AFFIRMATIVE = frozenset({"yes", "true", "checked"})


class FormActionExecutor:
    """Applies a Plan to a Playwright page, one action at a time."""

    # CSS selector metacharacters that must be escaped
    _CSS_META = str.maketrans(
        {
            '"': r"\"",
            "\\": "\\\\",
        }
    )

    def __init__(
        self,
        page: Page,
        post_click_ms: int = DEFAULT_POST_CLICK_MS,
        pacing_ms: int = DEFAULT_PACING_MS,
        dropdown_open_ms: int = DEFAULT_DROPDOWN_OPEN_MS,
        option_wait_ms: int = DEFAULT_OPTION_WAIT_MS,
        match_threshold: float = DEFAULT_MATCH_THRESHOLD,
        strategies: tuple[OptionStrategy, ...] = OPTION_STRATEGIES,
    ) -> None:
        self._page = page
        self._post_click_ms = post_click_ms
        self._pacing_ms = pacing_ms
        self._dropdown_open_ms = dropdown_open_ms
        self._option_wait_ms = option_wait_ms
        self._match_threshold = match_threshold
        self._strategies = strategies

    @classmethod
    def _selector_for(cls, field_id: str) -> str:
        """Attribute selector for a field id, with quotes escaped."""
        return f'[{ID_ATTR}="{field_id.translate(cls._CSS_META)}"]'

    def execute_plan(self, plan: Plan) -> list[ActionResult]:
        """Apply every action of *plan* in order and return their results."""
        logger.info("Executing %d action(s)", len(plan.actions))
        return [self.execute(action) for action in plan.actions]

    def execute(self, action: Action) -> ActionResult:
        """Apply a single action.

        Never raises on action failure -- the error is captured in the result.
        """
        if action.needs_human:
            logger.warning(
                "[Human Check Needed] Field: %s (%s) - Reason: %s",
                action.label,
                action.id,
                action.reasoning,
            )
            return ActionResult(
                action_id=action.id,
                action=action.type,
                label=action.label,
                success=True,
                skipped=True,
                detail="human_check",
            )

        selector = self._selector_for(action.id)
        locator = self._page.locator(selector)
        try:
            count = locator.count()
        except Exception as exc:
            count = 0
            logger.debug("Lookup of %s failed: %s", action.id, exc)
        if count != 1:
            logger.warning(
                "Target %s (%s) resolved to %d elements, expected 1. Skipping.",
                action.id,
                action.label,
                count,
            )
            return ActionResult(
                action_id=action.id,
                action=action.type,
                label=action.label,
                success=False,
                skipped=True,
                detail="target not found" if count == 0 else f"target ambiguous ({count} matches)",
            )

        logger.info("Action: [%s] on %s -> %s", action.type, action.label, action.value)
        start = time.monotonic()
        success = True
        detail = ""
        error: str | None = None

        try:
            if action.type == "fill":
                self._do_fill(locator, action)
            elif action.type == "file_upload":
                self._do_file_upload(locator, action)
            elif action.type in ("radio", "checkbox"):
                self._do_check(locator, action)
            elif action.type == "click":
                self._do_click(locator, action)
            elif action.type == "smart_select":
                success, detail = self._do_smart_select(locator, action)
            else:
                success = False
                error = f"Unknown action type: {action.type}"
        except Exception as exc:
            success = False
            error = f"{type(exc).__name__}: {exc}"
            logger.error("Failed to execute action on %s: %s", action.id, error)

        self._page.wait_for_timeout(self._pacing_ms)

        return ActionResult(
            action_id=action.id,
            action=action.type,
            label=action.label,
            success=success,
            error=error,
            detail=detail,
            duration_ms=round((time.monotonic() - start) * 1000, 1),
        )

    # -- Per-type handlers -------------------------------------------------------

    def _do_fill(self, locator: Locator, action: Action) -> None:
        locator.fill(action.value)
        # Blur so the page runs its own validation
        locator.blur()

    def _do_file_upload(self, locator: Locator, action: Action) -> None:
        locator.set_input_files(action.value)

    def _do_check(self, locator: Locator, action: Action) -> None:
        if action.value.strip().lower() not in _AFFIRMATIVE:
            logger.debug("Value %r for %s is not affirmative; selecting the control anyway", action.value, action.id)
        locator.check()

    def _do_click(self, locator: Locator, action: Action) -> None:
        locator.click(force=True)
        logger.debug("Clicked %s. Waiting for DOM update...", action.id)
        self._page.wait_for_timeout(self._post_click_ms)

    def _do_smart_select(self, locator: Locator, action: Action) -> tuple[bool, str]:
        """Open a custom dropdown, find its visible options, and click the best match.

        Returns ``(selected, detail)``.  When no visible options are found or
        no option clears the acceptance floor, the dropdown is dismissed with
        Escape and ``selected`` is False.
        """
        trigger = locator
        toggle = locator.locator(DROPDOWN_TOGGLE_SELECTOR)
        if toggle.count() > 0:
            trigger = toggle.first

        trigger.click(force=True)
        # Portaled menus usually render on the next frame
        self._page.wait_for_timeout(self._dropdown_open_ms)

        resolved = resolve_options(self._page, self._strategies, wait_ms=self._option_wait_ms)
        if resolved is None:
            logger.warning("Dropdown %s opened, but no visible options were found", action.id)
            self._dismiss()
            return False, "no visible options"

        result = find_best_match(action.value, resolved.texts)
        if result is None or result.score <= self._match_threshold:
            logger.warning(
                "No good match for %r. Top options: %s",
                action.value,
                resolved.texts[:3],
            )
            self._dismiss()
            return False, "no option above threshold"

        logger.info("Matched: %r (score: %.2f, via %s)", result.match, result.score, resolved.strategy)
        resolved.option_at(result.index).click(force=True)
        return True, result.match

    def _dismiss(self) -> None:
        """Close an open dropdown so it does not cover later fields."""
        self._page.keyboard.press("Escape")
