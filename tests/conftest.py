"""Shared fixtures and browser fakes.

The fakes stand in for Playwright's sync ``Page`` / ``ElementHandle`` and for
:class:`~kiln.scraper.session.SessionManager`, so no browser is needed.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Optional

import pytest


class FakeElement:
    def __init__(self, text: str = "", on_click: Optional[Callable[[], None]] = None) -> None:
        self.text = text
        self.filled: Optional[str] = None
        self._on_click = on_click

    def inner_text(self) -> str:
        return self.text

    def fill(self, value: str) -> None:
        self.filled = value

    def click(self) -> None:
        if self._on_click is not None:
            self._on_click()


class FakePage:
    """Answers ``query_selector`` from a selector → element mapping."""

    def __init__(
        self,
        url: str = "https://gasetten.se/",
        elements: Optional[dict[str, FakeElement]] = None,
        html: str = "",
        hrefs: Optional[list[Optional[str]]] = None,
    ) -> None:
        self.url = url
        self.elements = dict(elements or {})
        self.html = html
        self.hrefs = list(hrefs or [])
        self.closed = False
        self.waited_ms: list[float] = []

    def query_selector(self, selector: str) -> Optional[FakeElement]:
        return self.elements.get(selector)

    def eval_on_selector_all(self, selector: str, script: str) -> list[Optional[str]]:
        return list(self.hrefs)

    @contextmanager
    def expect_navigation(self, **kwargs):
        yield

    def wait_for_timeout(self, ms: float) -> None:
        self.waited_ms.append(ms)

    def content(self) -> str:
        return self.html

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Hands out pre-built pages keyed by URL and records the calls."""

    def __init__(self, pages: Optional[dict[str, FakePage]] = None) -> None:
        self.pages = dict(pages or {})
        self.opened: list[str] = []
        self.ensured = 0
        self.closed = False

    def ensure_session(self) -> None:
        self.ensured += 1

    def open_page(self, url: str, wait_until: str = "load") -> FakePage:
        self.opened.append(url)
        return self.pages.get(url) or FakePage(url=url)

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def workspace(tmp_path, monkeypatch):
    """Point the settings singleton at a throwaway workspace."""
    monkeypatch.setattr("kiln.config.settings.workspace_dir", tmp_path)
    return tmp_path
