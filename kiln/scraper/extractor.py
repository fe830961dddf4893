"""Article extraction: rendered page → :class:`~kiln.db.models.Article`.

trafilatura does the readability work (boilerplate removal, main-content
detection, title/author/date metadata).  Whatever it leaves blank is looked
up with ordered lists of CSS strategies over the same markup; the first
strategy that yields a value wins, so new fallbacks are appended to the
lists rather than coded as new branches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
import trafilatura
from bs4 import BeautifulSoup, Tag
from playwright.sync_api import Error as PlaywrightError

from kiln.db.models import DEFAULT_SOURCE, Article
from kiln.scraper.errors import ParseFailure
from kiln.scraper.session import SessionManager, close_page

logger = structlog.get_logger(__name__)

DateParser = Callable[[str], Optional[datetime]]


# ---------------------------------------------------------------------------
# Date parsing
# ---------------------------------------------------------------------------

_RFC3339_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:[Zz]|[+-]\d{2}:\d{2})$"
)


def parse_rfc3339(value: str) -> Optional[datetime]:
    """Parse a full RFC 3339 timestamp (date, time and offset all required)."""
    value = value.strip()
    if not _RFC3339_RE.match(value):
        return None
    if value[-1] in "Zz":
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _strptime(fmt: str) -> DateParser:
    def parse(value: str) -> Optional[datetime]:
        try:
            parsed = datetime.strptime(value.strip(), fmt)
        except ValueError:
            return None
        return parsed.replace(tzinfo=timezone.utc)

    parse.__name__ = f"strptime({fmt})"
    return parse


# Tried in order against a ``datetime`` attribute.
DATETIME_ATTR_PARSERS: tuple[DateParser, ...] = (
    parse_rfc3339,
    _strptime("%Y-%m-%d"),
    _strptime("%Y-%m-%dT%H:%M:%S"),
)

# Tried in order against a ``content`` attribute (``<meta>`` tags).
CONTENT_ATTR_PARSERS: tuple[DateParser, ...] = (parse_rfc3339,)

# Tried in order against element text once commas are removed,
# e.g. "9 november, 2025" -> "9 november 2025".
TEXT_PARSERS: tuple[DateParser, ...] = (
    _strptime("%d %B %Y"),
    _strptime("%B %d %Y"),
    _strptime("%Y-%m-%d"),
    _strptime("%d %b %Y"),
)

# Scanned in order; the first element matching each selector is inspected.
DATE_SELECTORS: tuple[str, ...] = (
    "time.post-date[datetime]",
    "time.entry-date[datetime]",
    "time[datetime]",
    'meta[property="article:published_time"]',
    ".post-date",
    '[class*="date"]',
)


def _clean_date_text(element: Tag) -> Optional[str]:
    text = element.get_text(" ", strip=True).replace(",", "")
    return re.sub(r"\s+", " ", text) or None


# (value reader, parsers) pairs applied to each candidate element in order.
_DATE_READERS: tuple[tuple[Callable[[Tag], Optional[str]], tuple[DateParser, ...]], ...] = (
    (lambda el: el.get("datetime"), DATETIME_ATTR_PARSERS),
    (lambda el: el.get("content"), CONTENT_ATTR_PARSERS),
    (_clean_date_text, TEXT_PARSERS),
)


def parse_date(value: str, parsers: tuple[DateParser, ...]) -> Optional[datetime]:
    """Return the result of the first parser that accepts *value*."""
    for parser in parsers:
        parsed = parser(value)
        if parsed is not None:
            return parsed
    return None


def extract_published_date(soup: BeautifulSoup) -> Optional[datetime]:
    """Scan :data:`DATE_SELECTORS` for a publication date.

    Returns ``None`` when nothing parses; there is no default date.
    """
    for selector in DATE_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        for read, parsers in _DATE_READERS:
            value = read(element)
            if not value or not isinstance(value, str):
                continue
            parsed = parse_date(value, parsers)
            if parsed is not None:
                return parsed
    return None


# ---------------------------------------------------------------------------
# Title / author fallbacks
# ---------------------------------------------------------------------------

# (selector, attribute); attribute ``None`` means the element's text.
TITLE_STRATEGIES: tuple[tuple[str, Optional[str]], ...] = (
    ('meta[property="og:title"]', "content"),
    ("h1.entry-title", None),
    ("article h1", None),
    ("h1", None),
    ("title", None),
)

AUTHOR_STRATEGIES: tuple[tuple[str, Optional[str]], ...] = (
    ('meta[name="author"]', "content"),
    ('[rel="author"]', None),
    (".author", None),
    (".byline", None),
)


def first_match(soup: BeautifulSoup, strategies: tuple[tuple[str, Optional[str]], ...]) -> Optional[str]:
    """Return the first non-blank value produced by *strategies*."""
    for selector, attribute in strategies:
        element = soup.select_one(selector)
        if element is None:
            continue
        if attribute is None:
            value = element.get_text(" ", strip=True)
        else:
            raw = element.get(attribute)
            value = raw.strip() if isinstance(raw, str) else ""
        if value:
            return value
    return None


# ---------------------------------------------------------------------------
# Readability
# ---------------------------------------------------------------------------

@dataclass
class Readable:
    """What the readability pass found; blank fields are ``None``."""

    title: Optional[str] = None
    byline: Optional[str] = None
    content_html: Optional[str] = None
    content_text: Optional[str] = None
    published_at: Optional[datetime] = None


# htmldate settings: report only dates present in the markup (no copyright-year
# or URL guesses), preferring the original publication date over updates.
HTMLDATE_CONFIG: dict[str, object] = {
    "extensive_search": False,
    "original_date": True,
    "outputformat": "%Y-%m-%d",
}


def _readability(html: str, url: str) -> Readable:
    result = Readable()
    try:
        result.content_text = trafilatura.extract(
            html,
            url=url,
            output_format="txt",
            include_comments=False,
            include_tables=True,
            no_fallback=False,
        ) or None
        result.content_html = trafilatura.extract(
            html,
            url=url,
            output_format="html",
            include_comments=False,
            include_tables=True,
            include_images=True,
            include_links=True,
            no_fallback=False,
        ) or None
        meta = trafilatura.extract_metadata(html, default_url=url, date_config=HTMLDATE_CONFIG)
    except Exception as exc:  # noqa: BLE001
        logger.warning("extractor.trafilatura_failed", url=url, error=str(exc))
        return result

    if meta is not None:
        result.title = (getattr(meta, "title", None) or "").strip() or None
        result.byline = (getattr(meta, "author", None) or "").strip() or None
        date = getattr(meta, "date", None)
        if date:
            result.published_at = parse_date(str(date), DATETIME_ATTR_PARSERS)
    return result


def _bs4_fallback(soup: BeautifulSoup) -> tuple[Optional[str], Optional[str]]:
    """Return ``(html, text)`` of the ``<article>``/``<main>``/``<body>`` container."""
    for tag in soup(["script", "style", "nav", "footer", "header", "noscript"]):
        tag.decompose()
    container = soup.find("article") or soup.find("main") or soup.body
    if container is None:
        return None, None
    text = container.get_text(separator=" ", strip=True)
    if not text:
        return None, None
    return str(container), text


def resolve_published_date(found: Optional[datetime], soup: BeautifulSoup) -> Optional[datetime]:
    """Combine the readability date with the :data:`DATE_SELECTORS` scan.

    htmldate reports calendar dates only.  When the scan finds a timestamp on
    that same day it is used instead, so the time of day is kept; a scan
    result on any other day never overrides the readability date.
    """
    scanned = extract_published_date(soup)
    if found is None:
        return scanned
    if scanned is not None and scanned.date() == found.date():
        return scanned
    return found


def parse_article(html: str, url: str, source: str = DEFAULT_SOURCE) -> Article:
    """Build an :class:`Article` from the rendered *html* of *url*.

    Raises:
        ParseFailure: The document is empty or has no readable content.
    """
    if not html or not html.strip():
        raise ParseFailure(url, "empty document")

    readable = _readability(html, url)
    soup = BeautifulSoup(html, "html.parser")

    title = readable.title or first_match(soup, TITLE_STRATEGIES)
    author = readable.byline or first_match(soup, AUTHOR_STRATEGIES)
    published_at = resolve_published_date(readable.published_at, soup)

    content_html, content_text = readable.content_html, readable.content_text
    if not content_text or not content_html:
        # The fallback mutates the tree, so it runs after the selector scans.
        fallback_html, fallback_text = _bs4_fallback(soup)
        content_html = content_html or fallback_html
        content_text = content_text or fallback_text
    if not content_text:
        raise ParseFailure(url, "no readable content")

    return Article(
        source=source,
        url=url,
        title=title,
        author=author,
        published_at=published_at,
        content_html=content_html,
        content_text=content_text,
    )


class ContentExtractor:
    """Loads article pages on the shared session and parses them."""

    def __init__(
        self,
        session: SessionManager,
        source: str = DEFAULT_SOURCE,
        settle_delay: float = 0.5,
    ) -> None:
        self.session = session
        self.source = source
        self.settle_delay = settle_delay

    def extract(self, url: str) -> Article:
        """Load *url*, give deferred scripts a moment, and parse the result.

        Raises:
            NavigationTimeout: The page did not load in time.
            NavigationFailure: The page could not be loaded.
            ParseFailure: The markup could not be read or had no content.
        """
        page = self.session.open_page(url)
        try:
            if self.settle_delay > 0:
                page.wait_for_timeout(self.settle_delay * 1000)
            try:
                html = page.content()
            except PlaywrightError as exc:
                raise ParseFailure(url, f"failed to get page HTML: {exc}") from exc
        finally:
            close_page(page)

        article = parse_article(html, url, self.source)
        logger.info(
            "extractor.extracted",
            url=url,
            title=article.title,
            author=article.author,
            published_at=article.published_at.isoformat() if article.published_at else None,
            html_chars=len(article.content_html or ""),
            text_chars=len(article.content_text or ""),
        )
        return article
