"""FormPilot Option Resolver -- finds the option list of an opened dropdown.

Front-end frameworks render dropdown menus in different places (React-Select
portals its menu to the end of <body>, ARIA listboxes, plain <li> lists), and
closed menus belonging to other controls often stay in the DOM.  Strategies
are tried from most framework-specific to most generic; the first one whose
non-empty result set has a visible first element wins, and its results are
used as-is.  Results from different strategies are never merged.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from playwright.sync_api import Locator, Page

logger = logging.getLogger("formpilot.engine.option_resolver")

# Elements with at least one non-whitespace character
_NON_BLANK = re.compile(r"\S")


@dataclasses.dataclass(frozen=True)
class OptionStrategy:
    """A named CSS selector for the option elements of one kind of dropdown."""

    name: str
    selector: str


# Priority order: most framework-specific first
OPTION_STRATEGIES: tuple[OptionStrategy, ...] = (
    OptionStrategy("react-select menu", '[class*="select__menu"] div'),
    OptionStrategy("aria option", '[role="option"]'),
    OptionStrategy("option class", '[class*="option"]'),
    OptionStrategy("list item", "li"),
)


@dataclasses.dataclass
class ResolvedOptions:
    """Visible options found by one strategy."""

    strategy: str
    locator: Any  # playwright Locator over the option elements
    texts: list[str]

    def option_at(self, index: int) -> Locator:
        return self.locator.nth(index)


def resolve_options(
    scope: Page | Locator,
    strategies: tuple[OptionStrategy, ...] = OPTION_STRATEGIES,
    wait_ms: int = 2000,
) -> ResolvedOptions | None:
    """Return the visible option list of the currently open dropdown, or None.

    Callers should dismiss the opened control when this returns None.
    """
    for strategy in strategies:
        try:
            candidates = scope.locator(strategy.selector).filter(has_text=_NON_BLANK)
            if candidates.count() == 0:
                continue
            if not candidates.first.is_visible():
                logger.debug("Strategy '%s' matched only hidden options", strategy.name)
                continue
        except Exception as exc:
            logger.debug("Strategy '%s' failed: %s", strategy.name, exc)
            continue

        try:
            candidates.first.wait_for(state="visible", timeout=wait_ms)
            texts = [t.strip() for t in candidates.all_inner_texts()]
        except Exception as exc:
            logger.warning("Options found via '%s' but could not be read: %s", strategy.name, exc)
            return None

        logger.debug("Found %d options using strategy '%s'", len(texts), strategy.name)
        return ResolvedOptions(strategy=strategy.name, locator=candidates, texts=texts)

    return None
