"""Exceptions raised by the scraper core.

Session, authentication and listing-page failures end a batch.  Navigation
and parse failures on a single article are caught by the batch loop and the
next article is attempted.
"""

from __future__ import annotations

from typing import Optional


class ScrapeError(Exception):
    """Base class for every scraper-core error."""


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class SessionError(ScrapeError):
    """The browser session could not be provided."""


class LaunchFailure(SessionError):
    """The local browser process failed to launch."""


class ConnectFailure(SessionError):
    """The browser driver or a remote browser endpoint could not be reached."""


# ---------------------------------------------------------------------------
# Navigation / extraction
# ---------------------------------------------------------------------------

class NavigationFailure(ScrapeError):
    """A page could not be loaded."""

    def __init__(self, url: str, detail: str) -> None:
        super().__init__(f"{detail} ({url})")
        self.url = url
        self.detail = detail


class NavigationTimeout(NavigationFailure):
    """A page did not finish loading within the page timeout."""


class ParseFailure(ScrapeError):
    """Rendered markup yielded no readable article content."""

    def __init__(self, url: str, detail: str) -> None:
        super().__init__(f"could not extract article from {url}: {detail}")
        self.url = url
        self.detail = detail


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class AuthError(ScrapeError):
    """Logging in to the site failed."""


class FieldNotFound(AuthError):
    """A login form control was missing from the page."""

    def __init__(self, field: str, selector: str) -> None:
        super().__init__(f"could not find {field} field ({selector})")
        self.field = field
        self.selector = selector


class SubmissionFailure(AuthError):
    """Credentials could not be entered or the form could not be submitted."""


class VerificationFailure(AuthError):
    """The login form was submitted but the session is still anonymous."""

    def __init__(self, url: str, page_error: Optional[str] = None) -> None:
        if page_error:
            message = f"login failed - error message: {page_error}"
        else:
            message = f"login failed - could not verify successful authentication at {url}"
        super().__init__(message)
        self.url = url
        self.page_error = page_error


# ---------------------------------------------------------------------------
# Batch control
# ---------------------------------------------------------------------------

class Cancelled(ScrapeError):
    """A batch observed its cancel token at a phase or item boundary."""


class BatchAlreadyActive(ScrapeError):
    """A batch was requested while another one is still running."""

    def __init__(self) -> None:
        super().__init__("Scraping is already in progress. Please wait for it to complete.")
