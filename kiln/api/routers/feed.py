"""RSS feed endpoint."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Request, Response

from kiln.api.feed import build_rss
from kiln.config import settings
from kiln.db.articles import list_recent_articles

router = APIRouter()


@router.get("/rss.xml")
def rss_feed(request: Request) -> Response:
    """Articles from the last ``FEED_DAYS`` days, at most ``FEED_LIMIT`` of them."""
    conn = request.app.state.db
    since = datetime.now(timezone.utc) - timedelta(days=settings.feed_days)
    articles = list_recent_articles(conn, since, limit=settings.feed_limit)
    return Response(
        content=build_rss(articles, settings),
        media_type="application/rss+xml; charset=utf-8",
    )
