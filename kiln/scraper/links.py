"""Article link discovery on a listing page."""

from __future__ import annotations

from typing import Iterable
from urllib.parse import urldefrag, urljoin, urlsplit

import structlog
from playwright.sync_api import Page

logger = structlog.get_logger(__name__)

# Path fragments that mark navigation, taxonomy, asset or account pages.
DEFAULT_DENYLIST: tuple[str, ...] = (
    "/author/",
    "/tag/",
    "/category/",
    "/page/",
    "/wp-content/",
    "/wp-login",
    "/wp-admin",
    "/min-profil",
    "/about",
    "/arkiv",
    "/stotta-oss",
    "/annonsera",
    "/registrera",
    "/kop-plus",
)

_IGNORED_SCHEMES = ("mailto:", "javascript:", "tel:")

_COLLECT_HREFS_JS = "els => els.map(e => e.getAttribute('href'))"


def filter_links(
    hrefs: Iterable[str | None],
    base_url: str,
    denylist: tuple[str, ...] = DEFAULT_DENYLIST,
) -> list[str]:
    """Turn raw ``href`` values into a deduplicated list of article URLs.

    Steps per href, in order:

    1. drop empty, fragment-only and ``mailto:``/``javascript:``/``tel:`` hrefs;
    2. resolve against *base_url* and strip any ``#fragment``;
    3. keep only URLs on the same scheme and host as *base_url*;
    4. drop URLs containing a *denylist* fragment;
    5. require at least two non-empty path segments (``/section/slug/``);
    6. keep the first occurrence of each exact URL string.

    This is a heuristic; the extractor and the store's URL check absorb
    whatever slips through.
    """
    base = urlsplit(base_url)
    origin = (base.scheme.lower(), base.netloc.lower())

    seen: set[str] = set()
    links: list[str] = []
    for href in hrefs:
        if not href:
            continue
        href = href.strip()
        if not href or href.startswith("#") or href.lower().startswith(_IGNORED_SCHEMES):
            continue

        url, _fragment = urldefrag(urljoin(base_url, href))
        parts = urlsplit(url)
        if (parts.scheme.lower(), parts.netloc.lower()) != origin:
            continue
        if any(pattern in url for pattern in denylist):
            continue

        segments = [s for s in parts.path.split("/") if s]
        if len(segments) < 2:
            continue

        if url not in seen:
            seen.add(url)
            links.append(url)
    return links


class LinkDiscoverer:
    """Collects candidate article URLs from an already loaded listing page."""

    def __init__(self, base_url: str, denylist: tuple[str, ...] = DEFAULT_DENYLIST) -> None:
        self.base_url = base_url
        self.denylist = denylist

    def discover(self, page: Page) -> list[str]:
        hrefs = page.eval_on_selector_all("a[href]", _COLLECT_HREFS_JS)
        links = filter_links(hrefs, self.base_url, self.denylist)
        logger.info("links.discovered", anchors=len(hrefs), articles=len(links), page=page.url)
        return links
