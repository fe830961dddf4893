"""CRUD operations for the ``articles`` table."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional

from kiln.db.models import Article


class ArticleNotFound(LookupError):
    """Raised when an article id does not exist."""

    def __init__(self, article_id: int) -> None:
        super().__init__(f"Article not found: {article_id}")
        self.article_id = article_id


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Normalise to a UTC ISO-8601 string so text ordering is chronological.

    Naive datetimes are taken to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def _from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_article(row: sqlite3.Row) -> Article:
    return Article(
        id=row["id"],
        source=row["source"],
        url=row["url"],
        title=row["title"],
        author=row["author"],
        published_at=_from_db_timestamp(row["published_at"]),
        content_html=row["content_html"],
        content_text=row["content_text"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def create_article(conn: sqlite3.Connection, article: Article) -> Article:
    """Insert *article* and return the stored copy with ``id`` and timestamps.

    Raises:
        sqlite3.IntegrityError: If an article with the same URL exists.
    """
    with conn:
        cursor = conn.execute(
            """
            INSERT INTO articles (source, url, title, author, published_at,
                                  content_html, content_text)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                article.source,
                article.url,
                article.title,
                article.author,
                _to_db_timestamp(article.published_at),
                article.content_html,
                article.content_text,
            ),
        )
    return get_article(conn, cursor.lastrowid)  # type: ignore[arg-type]


def get_article(conn: sqlite3.Connection, article_id: int) -> Article:
    """Fetch a single article by id.

    Raises:
        ArticleNotFound: If no row has this id.
    """
    row = conn.execute(
        "SELECT * FROM articles WHERE id = ?", (article_id,)
    ).fetchone()
    if row is None:
        raise ArticleNotFound(article_id)
    return _row_to_article(row)


def get_article_by_url(conn: sqlite3.Connection, url: str) -> Optional[Article]:
    """Fetch an article by its URL.  Returns ``None`` if not found."""
    row = conn.execute(
        "SELECT * FROM articles WHERE url = ?", (url,)
    ).fetchone()
    return _row_to_article(row) if row else None


def article_exists(conn: sqlite3.Connection, url: str) -> bool:
    """Return ``True`` if an article with this exact URL is stored."""
    row = conn.execute(
        "SELECT EXISTS(SELECT 1 FROM articles WHERE url = ?)", (url,)
    ).fetchone()
    return bool(row[0])


def list_articles(conn: sqlite3.Connection, limit: int = 100) -> list[Article]:
    """Return the most recently stored articles, newest first."""
    rows = conn.execute(
        "SELECT * FROM articles ORDER BY created_at DESC, id DESC LIMIT ?",
        (limit,),
    ).fetchall()
    return [_row_to_article(r) for r in rows]


def list_recent_articles(
    conn: sqlite3.Connection,
    since: datetime,
    limit: int = 50,
) -> list[Article]:
    """Return articles published at or after *since*, newest first.

    Articles without a published date are ordered by their creation time.
    """
    rows = conn.execute(
        """
        SELECT * FROM (
            SELECT *,
                   COALESCE(
                       published_at,
                       strftime('%Y-%m-%dT%H:%M:%S+00:00', created_at, 'unixepoch')
                   ) AS sort_key
            FROM articles
        )
        WHERE sort_key >= ?
        ORDER BY sort_key DESC, id DESC
        LIMIT ?
        """,
        (_to_db_timestamp(since), limit),
    ).fetchall()
    return [_row_to_article(r) for r in rows]


def delete_article(conn: sqlite3.Connection, article_id: int) -> None:
    """Delete one article.

    Raises:
        ArticleNotFound: If no row has this id.
    """
    with conn:
        cursor = conn.execute("DELETE FROM articles WHERE id = ?", (article_id,))
    if cursor.rowcount == 0:
        raise ArticleNotFound(article_id)


def delete_all_articles(conn: sqlite3.Connection) -> int:
    """Delete every article and return how many rows were removed."""
    with conn:
        cursor = conn.execute("DELETE FROM articles")
    return cursor.rowcount
