"""Tests for batch orchestration.

Every collaborator is a fake: no browser, no network.  Articles are written
to a throwaway SQLite file under ``tmp_path``.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

import pytest
from conftest import FakePage, FakeSession

from kiln.config import settings
from kiln.db import get_connection, init_db
from kiln.db.articles import create_article, list_articles
from kiln.db.models import Article
from kiln.scraper import CancelToken, LinkDiscoverer, ProgressStatus, Scraper
from kiln.scraper.errors import BatchAlreadyActive, ParseFailure, VerificationFailure

BASE = "https://gasetten.se"
URLS = [f"{BASE}/malmo-ff/story-{i}/" for i in (1, 2, 3)]


class FakeAuthenticator:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.calls = 0

    def login(self) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error


class FakeExtractor:
    """Returns a simple article per URL; *hook* runs before each extraction."""

    def __init__(
        self,
        failures: Optional[dict[str, Exception]] = None,
        hook: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.failures = failures or {}
        self.hook = hook
        self.extracted: list[str] = []

    def extract(self, url: str) -> Article:
        if self.hook is not None:
            self.hook(url)
        self.extracted.append(url)
        if url in self.failures:
            raise self.failures[url]
        return Article(url=url, title=url.rstrip("/").rsplit("/", 1)[-1], content_text="body")


@pytest.fixture()
def db_path(tmp_path):
    return tmp_path / "kiln.db"


@pytest.fixture()
def make_scraper(db_path):
    created: list[Scraper] = []

    def _make(
        extractor: Optional[FakeExtractor] = None,
        authenticator: Optional[FakeAuthenticator] = None,
        hrefs: Optional[list[str]] = None,
    ) -> Scraper:
        listing = FakePage(url=settings.listing_url, hrefs=URLS if hrefs is None else hrefs)
        scraper = Scraper(
            session=FakeSession({settings.listing_url: listing}),
            authenticator=authenticator or FakeAuthenticator(),
            discoverer=LinkDiscoverer(BASE),
            extractor=extractor or FakeExtractor(),
            db_path=db_path,
            delay=0,
        )
        created.append(scraper)
        return scraper

    yield _make
    for scraper in created:
        scraper.close()


def _run(scraper: Scraper, cancel: Optional[CancelToken] = None):
    """Run one batch; return (result or exception, [events])."""
    sub = scraper.progress.subscribe(maxsize=256)
    future = scraper.start_batch(cancel)
    try:
        outcome = future.result(timeout=10)
    except Exception as exc:  # noqa: BLE001
        outcome = exc
    return outcome, [s for s in sub.drain()]


def _stored_urls(db_path) -> list[str]:
    conn = get_connection(db_path)
    init_db(conn)
    try:
        return sorted(a.url for a in list_articles(conn))
    finally:
        conn.close()


class TestHappyPath:
    def test_stores_every_new_article(self, make_scraper, db_path) -> None:
        scraper = make_scraper()
        added, events = _run(scraper)
        assert added == 3
        assert _stored_urls(db_path) == sorted(URLS)
        final = events[-1]
        assert final.status is ProgressStatus.COMPLETED
        assert final.message == "Completed! Added 3 new articles."
        assert final.articles_added == 3
        assert scraper.is_active() is False

    def test_phases_in_order(self, make_scraper) -> None:
        _, events = _run(make_scraper())
        statuses = []
        for e in events:
            if not statuses or statuses[-1] is not e.status:
                statuses.append(e.status)
        assert statuses == [
            ProgressStatus.STARTING,
            ProgressStatus.AUTHENTICATING,
            ProgressStatus.DISCOVERING,
            ProgressStatus.EXTRACTING,
            ProgressStatus.COMPLETED,
        ]

    def test_saved_events_carry_new_article_ids(self, make_scraper) -> None:
        _, events = _run(make_scraper())
        ids = [e.new_article_id for e in events if e.new_article_id is not None]
        assert len(ids) == 3
        assert len(set(ids)) == 3

    def test_counters_never_decrease(self, make_scraper) -> None:
        _, events = _run(make_scraper())
        items = [e.current_item for e in events]
        added = [e.articles_added for e in events]
        assert items == sorted(items)
        assert added == sorted(added)

    def test_empty_listing_completes_with_zero(self, make_scraper) -> None:
        added, events = _run(make_scraper(hrefs=[]))
        assert added == 0
        assert events[-1].message == "Completed! Added 0 new articles."


class TestSkipsAndFailures:
    def test_existing_url_is_skipped(self, make_scraper, db_path) -> None:
        conn = get_connection(db_path)
        init_db(conn)
        create_article(conn, Article(url=URLS[1], title="already here"))
        conn.close()

        extractor = FakeExtractor()
        added, events = _run(make_scraper(extractor=extractor))

        assert added == 2
        assert extractor.extracted == [URLS[0], URLS[2]]
        skips = [e for e in events if "already exists, skipping" in e.message]
        assert [e.message for e in skips] == ["Article 2/3 already exists, skipping..."]
        assert events[-1].articles_added == 2

    def test_parse_failure_does_not_stop_batch(self, make_scraper, db_path) -> None:
        extractor = FakeExtractor(failures={URLS[1]: ParseFailure(URLS[1], "no readable content")})
        added, events = _run(make_scraper(extractor=extractor))

        assert added == 2
        assert _stored_urls(db_path) == sorted([URLS[0], URLS[2]])
        assert any(e.message.startswith("Failed to scrape article 2/3:") for e in events)
        assert events[-1].status is ProgressStatus.COMPLETED

    def test_login_failure_fails_batch(self, make_scraper, db_path) -> None:
        auth = FakeAuthenticator(VerificationFailure("https://gasetten.se/min-profil/", "Bad password"))
        scraper = make_scraper(authenticator=auth)
        outcome, events = _run(scraper)

        assert isinstance(outcome, VerificationFailure)
        final = events[-1]
        assert final.status is ProgressStatus.FAILED
        assert final.message == "Login failed: login failed - error message: Bad password"
        assert scraper.is_active() is False
        assert not db_path.exists() or _stored_urls(db_path) == []


class TestCancellation:
    def test_cancel_after_first_article(self, make_scraper, db_path) -> None:
        urls = [f"{BASE}/malmo-ff/cancel-{i}/" for i in range(1, 6)]
        token = CancelToken()
        extractor = FakeExtractor(hook=lambda url: token.cancel())
        added, events = _run(make_scraper(extractor=extractor, hrefs=urls), token)

        assert added == 1
        assert extractor.extracted == [urls[0]]
        assert _stored_urls(db_path) == [urls[0]]
        assert all(e.current_item <= 1 for e in events)
        final = events[-1]
        assert final.status is ProgressStatus.CANCELLED
        assert final.message == "Operation cancelled. Scraped 1 articles before cancellation."

    def test_cancel_without_batch_returns_false(self, make_scraper) -> None:
        assert make_scraper().cancel() is False


class TestConcurrency:
    def test_second_start_rejected_while_active(self, make_scraper) -> None:
        entered = threading.Event()
        release = threading.Event()

        def block(url: str) -> None:
            entered.set()
            release.wait(5)

        scraper = make_scraper(extractor=FakeExtractor(hook=block))
        future = scraper.start_batch()
        assert entered.wait(5)
        with pytest.raises(BatchAlreadyActive):
            scraper.start_batch()
        assert scraper.cancel() is True
        release.set()
        assert future.result(timeout=10) == 1
        assert scraper.progress.snapshot().status is ProgressStatus.CANCELLED

    def test_new_batch_allowed_after_previous_finished(self, make_scraper) -> None:
        scraper = make_scraper()
        assert scraper.run() == 3
        # Every URL is now stored, so the second batch adds nothing.
        assert scraper.run() == 0

    def test_start_after_close_raises(self, make_scraper) -> None:
        scraper = make_scraper()
        scraper.close()
        with pytest.raises(RuntimeError):
            scraper.start_batch()
