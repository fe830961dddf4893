"""FastAPI application factory.

Lifespan
--------
On startup the app configures logging, opens a single SQLite connection
(shared across requests via ``request.app.state.db``), initialises the
schema, and builds the :class:`~kiln.scraper.Scraper` (``app.state.scraper``).
On shutdown it stops any running batch, closes the browser and the DB.

Routers
-------
    /articles  — stored articles: list, detail, delete, clear
    /scrape    — start / cancel a batch, status, live progress (SSE)
    /rss.xml   — RSS 2.0 feed of recent articles
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

import kiln
from kiln.config import settings
from kiln.db import get_connection, init_db
from kiln.db.articles import ArticleNotFound
from kiln.logging_config import configure_logging
from kiln.scraper import Scraper

from kiln.api.routers import articles as articles_router
from kiln.api.routers import feed as feed_router
from kiln.api.routers import scrape as scrape_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the DB and the scraper on startup; close both on shutdown."""
    configure_logging(settings.log_level)
    settings.ensure_workspace()
    conn = get_connection()
    init_db(conn)
    scraper = Scraper(settings)
    app.state.db = conn
    app.state.scraper = scraper
    try:
        yield
    finally:
        await asyncio.get_running_loop().run_in_executor(None, scraper.close)
        conn.close()


async def _article_not_found(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="Kiln",
        description=(
            "Scrapes a gated news site into a local article store and "
            "republishes it as an RSS feed, with live scrape progress over "
            "Server-Sent Events."
        ),
        version=kiln.__version__,
        lifespan=lifespan,
    )

    app.add_exception_handler(ArticleNotFound, _article_not_found)

    app.include_router(articles_router.router, prefix="/articles", tags=["articles"])
    app.include_router(scrape_router.router, prefix="/scrape", tags=["scrape"])
    app.include_router(feed_router.router, tags=["feed"])

    @app.get("/health", response_class=PlainTextResponse, tags=["health"])
    def health() -> str:
        return "OK"

    return app


# Module-level instance used by uvicorn:
#   uvicorn kiln.api.app:app --reload
app = create_app()
