"""Scrape control and live progress (Server-Sent Events).

Routes
------
POST /scrape            start a batch in the background
POST /scrape/cancel     ask the running batch to stop
GET  /scrape/status     current progress snapshot
GET  /scrape/progress   progress stream

SSE event format
----------------
Each event is a JSON-encoded object on the ``data:`` line::

    data: {"status": "extracting", "message": "Saved article 3/12 (2 new)",
           "current_item": 3, "total_items": 12, "articles_added": 2,
           "new_article_id": 41}

The first event is the snapshot at subscription time.  The stream ends after
a ``completed``, ``failed`` or ``cancelled`` event, when the client goes
away, or when no batch is running and nothing is left to send.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from kiln.scraper import Scraper, SubscriptionClosed
from kiln.scraper.errors import BatchAlreadyActive

logger = structlog.get_logger(__name__)

router = APIRouter()

# How long an SSE stream waits for an update before re-checking the client.
POLL_SECONDS = 1.0


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class ScrapeStartResponse(BaseModel):
    started: bool
    message: str


class ScrapeCancelResponse(BaseModel):
    cancelled: bool


class ProgressResponse(BaseModel):
    status: str
    message: str
    current_item: int
    total_items: int
    articles_added: int
    new_article_id: Optional[int] = None
    active: bool


# ---------------------------------------------------------------------------
# SSE helpers
# ---------------------------------------------------------------------------

def _sse(payload: dict[str, Any]) -> str:
    """Format a payload dict as a single SSE ``data:`` line."""
    return f"data: {json.dumps(payload)}\n\n"


async def progress_events(
    scraper: Scraper,
    is_disconnected: Callable[[], Awaitable[bool]],
) -> AsyncIterator[str]:
    """Yield SSE frames from a fresh subscription until the batch ends.

    The blocking :meth:`~kiln.scraper.Subscription.get` runs in the default
    executor so the event loop stays free.
    """
    progress = scraper.progress
    subscription = progress.subscribe()
    loop = asyncio.get_running_loop()
    try:
        while True:
            try:
                state = await loop.run_in_executor(None, subscription.get, POLL_SECONDS)
            except SubscriptionClosed:
                break
            if state is None:
                if not progress.is_active() or await is_disconnected():
                    break
                continue
            yield _sse(state.to_event())
            if state.status.is_terminal:
                break
    finally:
        progress.unsubscribe(subscription)


def _scraper(request: Request) -> Scraper:
    return request.app.state.scraper


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("", status_code=202, response_model=ScrapeStartResponse)
def start_scrape(request: Request) -> Any:
    """Start a scrape batch in the background.

    A request made while a batch is running is answered with
    ``started: false`` and HTTP 200; the running batch is left alone.
    """
    scraper = _scraper(request)
    try:
        scraper.start_batch()
    except BatchAlreadyActive as exc:
        logger.info("scrape.rejected_already_active")
        return JSONResponse(status_code=200, content={"started": False, "message": str(exc)})
    logger.info("scrape.started")
    return {"started": True, "message": "Scraping started"}


@router.post("/cancel", response_model=ScrapeCancelResponse)
def cancel_scrape(request: Request) -> dict[str, bool]:
    return {"cancelled": _scraper(request).cancel()}


@router.get("/status", response_model=ProgressResponse)
def scrape_status(request: Request) -> dict[str, Any]:
    scraper = _scraper(request)
    return {**scraper.progress.snapshot().to_event(), "active": scraper.is_active()}


@router.get("/progress")
async def scrape_progress(request: Request) -> StreamingResponse:
    """Stream batch progress as Server-Sent Events."""
    return StreamingResponse(
        progress_events(_scraper(request), request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",   # disable nginx proxy buffering
            "Connection": "keep-alive",
        },
    )
