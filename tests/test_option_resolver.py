"""Unit tests for formpilot.engine.option_resolver — strategy cascade over mocked locators."""

from __future__ import annotations

from unittest.mock import MagicMock

from formpilot.engine.option_resolver import OPTION_STRATEGIES, OptionStrategy, resolve_options


def _candidates(texts: list[str], first_visible: bool = True) -> MagicMock:
    """A filtered locator mock holding *texts*."""
    loc = MagicMock(name="candidates")
    loc.count.return_value = len(texts)
    loc.first.is_visible.return_value = first_visible
    loc.all_inner_texts.return_value = texts
    return loc


def _scope(by_selector: dict[str, MagicMock]) -> MagicMock:
    """A page mock whose locator(selector).filter(...) yields the mapped candidates."""
    scope = MagicMock(name="page")

    def locator(selector: str) -> MagicMock:
        base = MagicMock(name=f"locator({selector})")
        base.filter.return_value = by_selector.get(selector, _candidates([]))
        return base

    scope.locator.side_effect = locator
    return scope


STRATEGY_SELECTORS = {s.name: s.selector for s in OPTION_STRATEGIES}


# ---------------------------------------------------------------------------
# 1. Strategy order
# ---------------------------------------------------------------------------


class TestStrategyOrder:
    """The first strategy with a visible result set wins."""

    def test_framework_specific_strategy_wins(self):
        react = _candidates([" Yes ", "No"])
        aria = _candidates(["Other"])
        scope = _scope(
            {
                STRATEGY_SELECTORS["react-select menu"]: react,
                STRATEGY_SELECTORS["aria option"]: aria,
            }
        )
        resolved = resolve_options(scope)
        assert resolved is not None
        assert resolved.strategy == "react-select menu"
        assert resolved.texts == ["Yes", "No"]
        aria.all_inner_texts.assert_not_called()

    def test_short_circuits_after_first_hit(self):
        scope = _scope({STRATEGY_SELECTORS["aria option"]: _candidates(["A", "B"])})
        resolve_options(scope)
        called = [c.args[0] for c in scope.locator.call_args_list]
        assert called == [STRATEGY_SELECTORS["react-select menu"], STRATEGY_SELECTORS["aria option"]]

    def test_hidden_first_element_falls_through(self):
        stale = _candidates(["Closed menu option"], first_visible=False)
        fresh = _candidates(["Austin", "Boston"])
        scope = _scope(
            {
                STRATEGY_SELECTORS["react-select menu"]: stale,
                STRATEGY_SELECTORS["list item"]: fresh,
            }
        )
        resolved = resolve_options(scope)
        assert resolved is not None
        assert resolved.strategy == "list item"
        assert resolved.texts == ["Austin", "Boston"]

    def test_custom_strategies(self):
        only = OptionStrategy("menu item", '[role="menuitem"]')
        scope = _scope({'[role="menuitem"]': _candidates(["One"])})
        resolved = resolve_options(scope, strategies=(only,))
        assert resolved is not None
        assert resolved.strategy == "menu item"


# ---------------------------------------------------------------------------
# 2. Failures
# ---------------------------------------------------------------------------


class TestFailures:
    """Errors in one strategy never abort the cascade."""

    def test_nothing_found_returns_none(self):
        assert resolve_options(_scope({})) is None

    def test_strategy_exception_continues(self):
        broken = MagicMock(name="broken")
        broken.count.side_effect = RuntimeError("detached")
        scope = _scope(
            {
                STRATEGY_SELECTORS["react-select menu"]: broken,
                STRATEGY_SELECTORS["aria option"]: _candidates(["Yes"]),
            }
        )
        resolved = resolve_options(scope)
        assert resolved is not None
        assert resolved.strategy == "aria option"

    def test_unreadable_options_return_none(self):
        loc = _candidates(["Yes"])
        loc.first.wait_for.side_effect = TimeoutError("never visible")
        scope = _scope({STRATEGY_SELECTORS["react-select menu"]: loc})
        assert resolve_options(scope, wait_ms=10) is None


# ---------------------------------------------------------------------------
# 3. ResolvedOptions
# ---------------------------------------------------------------------------


class TestResolvedOptions:
    def test_option_at_uses_nth(self):
        loc = _candidates(["A", "B", "C"])
        scope = _scope({STRATEGY_SELECTORS["react-select menu"]: loc})
        resolved = resolve_options(scope)
        resolved.option_at(2)
        loc.nth.assert_called_once_with(2)
