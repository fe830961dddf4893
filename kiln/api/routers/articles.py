"""Stored article endpoints.

Routes
------
GET    /articles             newest first, ``?limit=`` (default 100)
GET    /articles/{id}        one article (404 if unknown)
DELETE /articles/{id}        delete one article (404 if unknown)
POST   /articles/clear       delete every article
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Query, Request, Response
from pydantic import BaseModel

from kiln.db.articles import (
    delete_all_articles,
    delete_article,
    get_article,
    list_articles,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class ArticleResponse(BaseModel):
    id: int
    source: str
    url: str
    title: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[str] = None
    content_html: Optional[str] = None
    content_text: Optional[str] = None
    created_at: int
    updated_at: int


class ClearResponse(BaseModel):
    deleted: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("", response_model=list[ArticleResponse])
def list_articles_endpoint(
    request: Request,
    limit: int = Query(100, ge=1, le=1000),
) -> list[dict[str, Any]]:
    conn = request.app.state.db
    return [a.to_dict() for a in list_articles(conn, limit=limit)]


@router.post("/clear", response_model=ClearResponse)
def clear_articles(request: Request) -> dict[str, int]:
    """Delete every stored article."""
    conn = request.app.state.db
    count = delete_all_articles(conn)
    logger.info("articles.cleared", deleted=count)
    return {"deleted": count}


@router.get("/{article_id}", response_model=ArticleResponse)
def get_article_endpoint(article_id: int, request: Request) -> dict[str, Any]:
    conn = request.app.state.db
    return get_article(conn, article_id).to_dict()


@router.delete("/{article_id}", status_code=204)
def delete_article_endpoint(article_id: int, request: Request) -> Response:
    conn = request.app.state.db
    delete_article(conn, article_id)
    logger.info("articles.deleted", article_id=article_id)
    return Response(status_code=204)
