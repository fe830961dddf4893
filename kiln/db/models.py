"""Dataclass models representing DB rows.

These are plain Python objects – not ORM models.  The DB layer serialises /
deserialises to and from these types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

DEFAULT_SOURCE = "gasetten"


@dataclass
class Article:
    """A scraped article.

    Optional fields stay ``None`` when the page did not provide them, so
    renderers can tell "absent" apart from "empty".  ``id``, ``created_at``
    and ``updated_at`` are assigned by the store.
    """

    url: str
    source: str = DEFAULT_SOURCE
    title: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    content_html: Optional[str] = None
    content_text: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation used by the API."""
        return {
            "id": self.id,
            "source": self.source,
            "url": self.url,
            "title": self.title,
            "author": self.author,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "content_html": self.content_html,
            "content_text": self.content_text,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
