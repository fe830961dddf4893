"""Tests for RSS serialisation."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timezone

from kiln.api.feed import build_rss
from kiln.config import Settings
from kiln.db.models import Article

NOW = datetime(2025, 11, 10, 12, 0, tzinfo=timezone.utc)


def _config() -> Settings:
    config = Settings()
    config.feed_title = "Test Feed"
    config.feed_description = "Articles under test"
    config.feed_link = "http://localhost:8080/"
    config.feed_author = "Tester"
    return config


def _items(xml: str) -> list[ET.Element]:
    return ET.fromstring(xml.split("\n", 1)[1]).findall("./channel/item")


class TestChannel:
    def test_channel_metadata(self) -> None:
        xml = build_rss([], _config(), now=NOW)
        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        channel = ET.fromstring(xml.split("\n", 1)[1]).find("channel")
        assert channel.findtext("title") == "Test Feed"
        assert channel.findtext("description") == "Articles under test"
        assert channel.findtext("managingEditor") == "Tester"
        assert channel.findtext("pubDate") == "Mon, 10 Nov 2025 12:00:00 +0000"
        assert channel.findall("item") == []


class TestItems:
    def test_full_article(self) -> None:
        article = Article(
            id=4,
            url="https://gasetten.se/malmo-ff/derby/",
            title="Derby",
            author="Anna",
            published_at=datetime(2025, 11, 9, 17, 30, tzinfo=timezone.utc),
            content_text="Short body",
        )
        (item,) = _items(build_rss([article], _config(), now=NOW))
        assert item.findtext("title") == "Derby"
        assert item.findtext("link") == "https://gasetten.se/malmo-ff/derby/"
        assert item.findtext("guid") == "http://localhost:8080/articles/4"
        assert item.find("guid").get("isPermaLink") == "false"
        assert item.findtext("description") == "Short body"
        assert item.findtext("author") == "Anna"
        assert item.findtext("pubDate") == "Sun, 09 Nov 2025 17:30:00 +0000"

    def test_missing_fields_fall_back(self) -> None:
        article = Article(id=1, url="https://gasetten.se/a/b/", created_at=1762689600)
        (item,) = _items(build_rss([article], _config(), now=NOW))
        assert item.findtext("title") == "Untitled Article"
        assert item.find("author") is None
        assert item.find("description") is None
        # 1762689600 == 2025-11-09T12:00:00Z
        assert item.findtext("pubDate") == "Sun, 09 Nov 2025 12:00:00 +0000"

    def test_long_text_is_truncated(self) -> None:
        article = Article(id=2, url="https://gasetten.se/a/c/", content_text="x" * 800)
        (item,) = _items(build_rss([article], _config(), now=NOW))
        assert item.findtext("description") == "x" * 500 + "..."

    def test_html_used_when_no_text(self) -> None:
        article = Article(id=3, url="https://gasetten.se/a/d/", content_html="<p>Hi</p>")
        (item,) = _items(build_rss([article], _config(), now=NOW))
        assert item.findtext("description") == "<p>Hi</p>"

    def test_items_keep_input_order(self) -> None:
        articles = [Article(id=i, url=f"https://gasetten.se/a/{i}/", title=str(i)) for i in (3, 1, 2)]
        titles = [i.findtext("title") for i in _items(build_rss(articles, _config(), now=NOW))]
        assert titles == ["3", "1", "2"]
