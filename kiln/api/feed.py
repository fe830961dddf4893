"""RSS 2.0 serialisation of stored articles."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Iterable, Optional

from kiln.config import Settings
from kiln.db.models import Article

DESCRIPTION_LIMIT = 500
UNTITLED = "Untitled Article"


def _rfc822(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc))


def _item_date(article: Article) -> Optional[datetime]:
    if article.published_at is not None:
        return article.published_at
    if article.created_at is not None:
        return datetime.fromtimestamp(article.created_at, tz=timezone.utc)
    return None


def _description(article: Article) -> Optional[str]:
    if article.content_text is not None:
        text = article.content_text
        if len(text) > DESCRIPTION_LIMIT:
            text = text[:DESCRIPTION_LIMIT] + "..."
        return text
    return article.content_html


def build_rss(articles: Iterable[Article], config: Settings, now: Optional[datetime] = None) -> str:
    """Render *articles* as an RSS 2.0 document.

    Items fall back to ``"Untitled Article"`` when the title is absent and to
    the article's creation time when no publication date was found.
    """
    now = now or datetime.now(timezone.utc)
    link = config.feed_link.rstrip("/")

    rss = ET.Element("rss", {"version": "2.0"})
    channel = ET.SubElement(rss, "channel")
    ET.SubElement(channel, "title").text = config.feed_title
    ET.SubElement(channel, "link").text = config.feed_link
    ET.SubElement(channel, "description").text = config.feed_description
    ET.SubElement(channel, "managingEditor").text = config.feed_author
    ET.SubElement(channel, "pubDate").text = _rfc822(now)

    for article in articles:
        item = ET.SubElement(channel, "item")
        ET.SubElement(item, "title").text = article.title or UNTITLED
        ET.SubElement(item, "link").text = article.url
        ET.SubElement(item, "guid", {"isPermaLink": "false"}).text = f"{link}/articles/{article.id}"
        description = _description(article)
        if description is not None:
            ET.SubElement(item, "description").text = description
        if article.author:
            ET.SubElement(item, "author").text = article.author
        published = _item_date(article)
        if published is not None:
            ET.SubElement(item, "pubDate").text = _rfc822(published)

    ET.indent(rss, space="  ")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(rss, encoding="unicode")
