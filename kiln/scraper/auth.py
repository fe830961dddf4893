"""Login flow for the gated site.

The site is a WordPress install: an anonymous visit to a members-only page
renders ``form#loginform`` in place of the content.  :meth:`Authenticator.login`
therefore opens that members-only page rather than ``wp-login.php`` and only
fills the form when it is actually shown.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog
from playwright.sync_api import (
    Error as PlaywrightError,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

from kiln.scraper.errors import (
    FieldNotFound,
    NavigationTimeout,
    SubmissionFailure,
    VerificationFailure,
)
from kiln.scraper.session import SessionManager, close_page

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LoginSelectors:
    """CSS selectors for the login form, kept as data so markup drift is a config change."""

    login_form: str = "form#loginform"
    username: str = 'input[name="log"]'
    password: str = 'input[name="pwd"]'
    submit: str = "input#wp-submit"
    error_messages: tuple[str, ...] = (".login-error", "#login_error", ".error")


def is_authenticated(page: Page, selectors: LoginSelectors = LoginSelectors()) -> bool:
    """Return ``True`` unless the login form is on the page.

    Only the negative signal is trusted: there is no stable "logged in"
    marker on the site.  A login form rendered by some unrelated widget
    would be misread as an anonymous session.
    """
    return page.query_selector(selectors.login_form) is None


def first_text(page: Page, selectors: tuple[str, ...]) -> Optional[str]:
    """Return the stripped text of the first selector that matches non-empty text."""
    for selector in selectors:
        element = page.query_selector(selector)
        if element is None:
            continue
        text = (element.inner_text() or "").strip()
        if text:
            return text
    return None


class Authenticator:
    """Drives the login form through a :class:`SessionManager`."""

    def __init__(
        self,
        session: SessionManager,
        login_url: str,
        username: str,
        password: str,
        selectors: LoginSelectors = LoginSelectors(),
    ) -> None:
        self.session = session
        self.login_url = login_url
        self.username = username
        self.password = password
        self.selectors = selectors

    def login(self) -> None:
        """Make sure the session is logged in.

        A no-op when the stored cookies are still valid.  On success the new
        cookies are written to the session's user-data directory by the
        browser itself.

        Raises:
            NavigationTimeout: The members page or the post-submit page timed out.
            FieldNotFound: Username, password or submit control is missing.
            SubmissionFailure: Credentials are unset or could not be submitted.
            VerificationFailure: The form is still shown after submitting.
        """
        page = self.session.open_page(self.login_url)
        try:
            if is_authenticated(page, self.selectors):
                logger.info("auth.already_logged_in", url=self.login_url)
                return
            self._submit_credentials(page)
            self._verify(page)
        finally:
            close_page(page)

    def _submit_credentials(self, page: Page) -> None:
        if not self.username or not self.password:
            raise SubmissionFailure(
                "login form shown but SITE_USERNAME / SITE_PASSWORD are not configured"
            )

        logger.info("auth.logging_in", url=self.login_url)
        fields = (
            ("username", self.selectors.username, self.username),
            ("password", self.selectors.password, self.password),
        )
        for name, selector, value in fields:
            element = page.query_selector(selector)
            if element is None:
                raise FieldNotFound(name, selector)
            try:
                element.fill(value)
            except PlaywrightError as exc:
                raise SubmissionFailure(f"could not input {name}: {exc}") from exc
            logger.debug("auth.field_filled", field=name)

        button = page.query_selector(self.selectors.submit)
        if button is None:
            raise FieldNotFound("submit", self.selectors.submit)

        try:
            with page.expect_navigation(wait_until="load"):
                button.click()
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(page.url, "timeout waiting for page after login") from exc
        except PlaywrightError as exc:
            raise SubmissionFailure(f"could not click login button: {exc}") from exc

        logger.info("auth.submitted", redirected_to=page.url)

    def _verify(self, page: Page) -> None:
        if is_authenticated(page, self.selectors):
            logger.info("auth.logged_in", url=page.url)
            return

        page_error = first_text(page, self.selectors.error_messages)
        logger.warning("auth.verification_failed", url=page.url, page_error=page_error)
        raise VerificationFailure(page.url, page_error)
