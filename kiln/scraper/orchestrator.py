"""Batch orchestration: login → discover → extract → persist.

:class:`Scraper` owns the browser session and a single worker thread.  Every
batch, and every other call that touches the browser, runs on that thread,
so the session is never driven by two batches at once.  Callers start a
batch with :meth:`Scraper.start_batch`, which refuses to start a second
batch while one is active, and follow it through :attr:`Scraper.progress`.

Cancellation is cooperative.  The :class:`CancelToken` is checked after
login, after discovery, and before each article; a page load already in
flight runs until it finishes or hits the page timeout.
"""

from __future__ import annotations

import sqlite3
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Optional

import structlog

from kiln.config import Settings, settings
from kiln.db import get_connection, init_db
from kiln.db.articles import article_exists, create_article
from kiln.scraper.auth import Authenticator
from kiln.scraper.errors import BatchAlreadyActive, Cancelled
from kiln.scraper.extractor import ContentExtractor
from kiln.scraper.links import LinkDiscoverer
from kiln.scraper.progress import ProgressBroadcaster, ProgressStatus
from kiln.scraper.session import SessionManager, close_page

logger = structlog.get_logger(__name__)


class CancelToken:
    """A poll-checked cancellation flag shared between a batch and its caller."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled("operation cancelled")

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*, waking early on cancellation."""
        return self._event.wait(seconds)


class Scraper:
    """Runs scrape batches against the configured site.

    Collaborators default to the real implementations built from *config*;
    tests pass their own.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        broadcaster: Optional[ProgressBroadcaster] = None,
        session: Optional[SessionManager] = None,
        authenticator: Optional[Authenticator] = None,
        discoverer: Optional[LinkDiscoverer] = None,
        extractor: Optional[ContentExtractor] = None,
        db_path: Optional[Path] = None,
        delay: Optional[float] = None,
    ) -> None:
        cfg = config or settings
        self.progress = broadcaster or ProgressBroadcaster(cfg.progress_buffer)
        self.session = session or SessionManager(
            cfg.session_dir,
            headless=cfg.headless,
            cdp_url=cfg.browser_cdp_url,
            page_timeout=cfg.page_timeout,
        )
        self.authenticator = authenticator or Authenticator(
            self.session, cfg.login_url, cfg.site_username, cfg.site_password
        )
        self.discoverer = discoverer or LinkDiscoverer(cfg.site_url)
        self.extractor = extractor or ContentExtractor(
            self.session, cfg.site_source, cfg.settle_delay
        )
        self.listing_url = cfg.listing_url
        self.db_path = db_path or cfg.db_path
        self.delay = cfg.scrape_delay if delay is None else delay

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scrape")
        self._cancel: Optional[CancelToken] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def is_active(self) -> bool:
        return self.progress.is_active()

    def start_batch(self, cancel: Optional[CancelToken] = None) -> "Future[int]":
        """Start a batch on the worker thread.

        Returns:
            A future resolving to the number of newly stored articles.  It
            raises the batch-fatal error if login, the session or the listing
            page failed.

        Raises:
            BatchAlreadyActive: Another batch has not finished yet.
        """
        if self._closed:
            raise RuntimeError("scraper is closed")
        if not self.progress.try_activate("Initializing browser..."):
            raise BatchAlreadyActive()

        token = cancel or CancelToken()
        self._cancel = token
        try:
            future = self._executor.submit(self._run_batch, token)
        except RuntimeError:
            self.progress.deactivate()
            raise
        future.add_done_callback(_log_outcome)
        return future

    def run(self, cancel: Optional[CancelToken] = None) -> int:
        """Run one batch to completion and return the number of new articles."""
        return self.start_batch(cancel).result()

    def cancel(self) -> bool:
        """Ask the active batch to stop.  Returns ``False`` if none is running."""
        token = self._cancel
        if token is None or not self.is_active():
            return False
        token.cancel()
        logger.info("batch.cancel_requested")
        return True

    def close(self) -> None:
        """Cancel any running batch, close the browser, stop the worker."""
        if self._closed:
            return
        self._closed = True
        if self._cancel is not None:
            self._cancel.cancel()
        self._executor.submit(self.session.close).result()
        self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Batch body (worker thread)
    # ------------------------------------------------------------------

    def _run_batch(self, cancel: CancelToken) -> int:
        progress = self.progress
        added = 0
        conn: Optional[sqlite3.Connection] = None
        failure = "Failed to initialize browser"
        logger.info("batch.started", listing_url=self.listing_url)
        try:
            self.session.ensure_session()

            failure = "Login failed"
            progress.set_status(ProgressStatus.AUTHENTICATING, "Logging in...")
            self.authenticator.login()
            cancel.raise_if_cancelled()

            failure = "Failed to load listing page"
            progress.set_status(ProgressStatus.DISCOVERING, "Loading article listing page...")
            links = self._discover()
            total = len(links)
            progress.set_progress(0, total, f"Found {total} articles")
            cancel.raise_if_cancelled()

            failure = "Failed to open article store"
            conn = get_connection(self.db_path)
            init_db(conn)

            failure = "Scrape failed"
            progress.set_status(
                ProgressStatus.EXTRACTING,
                f"Found {total} articles, starting to scrape...",
            )
            for index, url in enumerate(links, start=1):
                cancel.raise_if_cancelled()
                if self._process_item(conn, cancel, url, index, total, added):
                    added += 1

            progress.set_status(
                ProgressStatus.COMPLETED, f"Completed! Added {added} new articles."
            )
            logger.info("batch.completed", articles_added=added, total=total)
            return added

        except Cancelled:
            progress.set_status(
                ProgressStatus.CANCELLED,
                f"Operation cancelled. Scraped {added} articles before cancellation.",
            )
            logger.info("batch.cancelled", articles_added=added)
            return added

        except Exception as exc:
            progress.set_status(ProgressStatus.FAILED, f"{failure}: {exc}")
            raise

        finally:
            if conn is not None:
                conn.close()
            progress.deactivate()

    def _discover(self) -> list[str]:
        page = self.session.open_page(self.listing_url)
        try:
            return self.discoverer.discover(page)
        finally:
            close_page(page)

    def _process_item(
        self,
        conn: sqlite3.Connection,
        cancel: CancelToken,
        url: str,
        index: int,
        total: int,
        added: int,
    ) -> bool:
        """Handle one discovered URL.  Returns ``True`` if a new article was stored.

        Failures here are logged and reported as progress; they never end
        the batch.
        """
        progress = self.progress
        progress.set_progress(index, total, f"Processing article {index}/{total}...")
        log = logger.bind(url=url, item=index, total=total)

        try:
            exists = article_exists(conn, url)
        except sqlite3.Error as exc:
            log.error("batch.exists_check_failed", error=str(exc))
            progress.set_progress(index, total, f"Could not check article {index}/{total}: {exc}")
            return False
        if exists:
            log.info("batch.article_skipped")
            progress.set_progress(
                index, total, f"Article {index}/{total} already exists, skipping..."
            )
            return False

        try:
            article = self.extractor.extract(url)
            stored = create_article(conn, article)
        except Exception as exc:  # noqa: BLE001
            log.warning("batch.article_failed", error=str(exc), error_type=type(exc).__name__)
            progress.set_progress(
                index, total, f"Failed to scrape article {index}/{total}: {exc}"
            )
            self._pause(cancel)
            return False

        log.info("batch.article_saved", article_id=stored.id, title=stored.title)
        progress.increment_persisted(
            stored.id, f"Saved article {index}/{total} ({added + 1} new)"
        )
        self._pause(cancel)
        return True

    def _pause(self, cancel: CancelToken) -> None:
        if self.delay > 0:
            cancel.wait(self.delay)


def _log_outcome(future: "Future[int]") -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("batch.failed", error=str(exc), error_type=type(exc).__name__)
    else:
        logger.info("batch.finished", articles_added=future.result())
