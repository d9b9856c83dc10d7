"""FormPilot Browser Runner — Playwright browser lifecycle.

Launches Chromium with the configured viewport, opens the target form, and
hands the page to the reconciliation loop.  Also provides the network-idle
wait the loop uses between passes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from formpilot.models import DEFAULT_QUIESCENCE_TIMEOUT_MS, DEFAULT_VIEWPORT

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = logging.getLogger("formpilot.engine.browser_runner")


def wait_for_quiescence(page: Page, timeout_ms: int = DEFAULT_QUIESCENCE_TIMEOUT_MS) -> bool:
    """Wait until the page's network is idle.

    Returns False instead of raising when the page never gets there.
    """
    try:
        page.wait_for_load_state("networkidle", timeout=timeout_ms)
        return True
    except Exception:
        logger.debug("Page did not reach networkidle within %dms", timeout_ms)
        return False


class BrowserRunner:
    """Owns one Playwright browser, context and page.

    Usage::

        runner = BrowserRunner(headless=False)
        runner.start()
        page = runner.open("https://boards.example.com/jobs/123")
        ...
        runner.stop()
    """

    def __init__(
        self,
        headless: bool = False,
        viewport: tuple[int, int] = DEFAULT_VIEWPORT,
        navigation_timeout_ms: int = 30_000,
        quiescence_timeout_ms: int = DEFAULT_QUIESCENCE_TIMEOUT_MS,
    ) -> None:
        self._headless = headless
        self._viewport = viewport
        self._navigation_timeout_ms = navigation_timeout_ms
        self._quiescence_timeout_ms = quiescence_timeout_ms
        self._playwright: Any | None = None
        self._browser: Any | None = None
        self._context: Any | None = None
        self._page: Page | None = None

    # -- Browser Lifecycle ---------------------------------------------------

    def start(self) -> None:
        """Launch the Playwright browser. Call once before open()."""
        from playwright.sync_api import sync_playwright

        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(headless=self._headless)
        self._context = self._browser.new_context(
            viewport={"width": self._viewport[0], "height": self._viewport[1]},
        )
        self._page = self._context.new_page()
        logger.info("Browser started (headless=%s, viewport=%dx%d)", self._headless, *self._viewport)

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser not started. Call start() first.")
        return self._page

    def open(self, url: str) -> Page:
        """Navigate to *url* and wait for the form to become interactive."""
        page = self.page
        logger.info("Navigating to %s", url)
        page.goto(url, wait_until="domcontentloaded", timeout=self._navigation_timeout_ms)
        # Some pages never reach networkidle -- that's fine
        wait_for_quiescence(page, self._quiescence_timeout_ms)
        return page

    def stop(self) -> None:
        """Close the browser and Playwright. Never raises."""
        for name in ("_context", "_browser"):
            resource = getattr(self, name)
            try:
                if resource is not None:
                    resource.close()
            except Exception as exc:
                logger.debug("Failed to close %s: %s", name.lstrip("_"), exc)
        try:
            if self._playwright is not None:
                self._playwright.stop()
        except Exception as exc:
            logger.debug("Failed to stop Playwright: %s", exc)
        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None
