"""Browser session lifecycle.

A :class:`SessionManager` owns one Playwright browser context.  Locally the
context is a *persistent* Chromium context rooted at a fixed user-data
directory, so the site's login cookies survive between runs and the
authenticator can skip the form on a warm start.  When ``BROWSER_CDP_URL`` is
set, an already running Chromium is attached to over CDP instead.

Playwright's sync API is bound to the thread that started it: every method
of a given manager must be called from the same thread.  The
:class:`~kiln.scraper.orchestrator.Scraper` guarantees this by running all
browser work on its single worker thread.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog
from playwright.sync_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    sync_playwright,
)

from kiln.scraper.errors import (
    ConnectFailure,
    LaunchFailure,
    NavigationFailure,
    NavigationTimeout,
)

logger = structlog.get_logger(__name__)


class SessionManager:
    """Lazily launched, liveness-checked browser session.

    Args:
        user_data_dir: Browser profile directory (cookies, local storage).
        headless: Launch Chromium without a window.
        cdp_url: Attach to this remote browser instead of launching one.
        page_timeout: Upper bound, in seconds, for every page operation.
    """

    def __init__(
        self,
        user_data_dir: Path,
        *,
        headless: bool = True,
        cdp_url: str = "",
        page_timeout: float = 30.0,
    ) -> None:
        self.user_data_dir = Path(user_data_dir)
        self.headless = headless
        self.cdp_url = cdp_url
        self.timeout_ms = int(page_timeout * 1000)

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._context_closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ensure_session(self) -> BrowserContext:
        """Return the live browser context, (re)launching it when needed.

        Raises:
            ConnectFailure: The Playwright driver or the CDP endpoint failed.
            LaunchFailure: The local browser could not be launched.
        """
        if self._context is not None:
            if self.is_alive():
                return self._context
            logger.warning("session.stale", user_data_dir=str(self.user_data_dir))
            self._teardown()

        self._launch()
        assert self._context is not None
        return self._context

    def is_alive(self) -> bool:
        """Probe the context with a cheap round-trip.  Never raises."""
        if self._context is None or self._context_closed:
            return False
        try:
            self._context.cookies()
        except Exception as exc:  # noqa: BLE001
            logger.warning("session.liveness_check_failed", error=str(exc))
            return False
        return True

    def close(self) -> None:
        """Tear down the context, browser and driver.  Safe to call twice."""
        if self._playwright is None and self._context is None:
            return
        self._teardown()
        logger.info("session.closed")

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def open_page(self, url: str, wait_until: str = "load") -> Page:
        """Open a new page on the session and navigate it to *url*.

        The caller owns the returned page and must close it.

        Raises:
            NavigationTimeout: The page did not reach *wait_until* in time.
            NavigationFailure: Any other navigation error.
        """
        context = self.ensure_session()
        try:
            page = context.new_page()
        except PlaywrightError as exc:
            raise NavigationFailure(url, f"failed to create page: {exc}") from exc

        try:
            page.goto(url, wait_until=wait_until, timeout=self.timeout_ms)
        except PlaywrightTimeoutError as exc:
            close_page(page)
            raise NavigationTimeout(url, "timeout waiting for page to load") from exc
        except PlaywrightError as exc:
            close_page(page)
            raise NavigationFailure(url, f"navigation failed: {exc}") from exc
        return page

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _launch(self) -> None:
        if self._playwright is None:
            try:
                self._playwright = sync_playwright().start()
            except Exception as exc:  # noqa: BLE001
                raise ConnectFailure(f"failed to start browser driver: {exc}") from exc

        chromium = self._playwright.chromium
        if self.cdp_url:
            try:
                browser = chromium.connect_over_cdp(self.cdp_url, timeout=self.timeout_ms)
            except PlaywrightError as exc:
                raise ConnectFailure(
                    f"failed to connect to browser at {self.cdp_url}: {exc}"
                ) from exc
            context = browser.contexts[0] if browser.contexts else browser.new_context()
            self._browser = browser
        else:
            self.user_data_dir.mkdir(parents=True, exist_ok=True)
            try:
                context = chromium.launch_persistent_context(
                    str(self.user_data_dir),
                    headless=self.headless,
                    timeout=self.timeout_ms,
                )
            except PlaywrightError as exc:
                raise LaunchFailure(f"failed to launch browser: {exc}") from exc

        context.set_default_timeout(self.timeout_ms)
        context.set_default_navigation_timeout(self.timeout_ms)
        context.on("close", self._on_context_close)
        self._context = context
        self._context_closed = False

        logger.info(
            "session.launched",
            mode="cdp" if self.cdp_url else "persistent",
            headless=self.headless,
            user_data_dir=str(self.user_data_dir),
        )

    def _on_context_close(self, *_args: object) -> None:
        self._context_closed = True

    def _teardown(self) -> None:
        context, browser, playwright = self._context, self._browser, self._playwright
        self._context = None
        self._browser = None
        self._playwright = None
        self._context_closed = False

        # A CDP-attached browser owns its contexts; disconnecting is enough.
        if browser is not None:
            _quietly("browser.close", browser.close)
        elif context is not None:
            _quietly("context.close", context.close)
        if playwright is not None:
            _quietly("playwright.stop", playwright.stop)


def close_page(page: Page) -> None:
    """Close *page*, logging rather than raising if the session already died."""
    _quietly("page.close", page.close)


def _quietly(what: str, func) -> None:  # type: ignore[no-untyped-def]
    try:
        func()
    except Exception as exc:  # noqa: BLE001
        logger.debug("session.cleanup_failed", step=what, error=str(exc))
