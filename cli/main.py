"""Kiln CLI — entry-point for all operations.

Usage:
    python cli/main.py --help

Command groups:
    db        → article store setup
    scrape    → run one scrape batch, printing live progress
    articles  → list / show / delete stored articles
    serve     → start the HTTP API (feed, articles, scrape control)
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from kiln.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any working
# directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import dataclasses
from concurrent.futures import Future
from typing import Optional

import typer

from cli.commands.articles import articles_app
from kiln.config import settings
from kiln.db import get_connection, init_db
from kiln.logging_config import configure_logging
from kiln.scraper import ProgressState, Scraper, Subscription, SubscriptionClosed

app = typer.Typer(
    name="kiln",
    help="Kiln: scrape a members-only news site into a local RSS feed.",
    no_args_is_help=True,
)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ...)."
    ),
) -> None:
    configure_logging(log_level or settings.log_level)


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    conn = get_connection()
    init_db(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path}")


app.add_typer(articles_app, name="articles")


# ---------------------------------------------------------------------------
# Scrape
# ---------------------------------------------------------------------------
_POLL_SECONDS = 1.0


def _render(state: ProgressState) -> str:
    counter = f"{state.current_item}/{state.total_items}" if state.total_items else "-"
    return f"[scrape] {state.status.value:<14} {counter:>7}  {state.message}"


def _follow(subscription: Subscription, future: "Future[int]") -> None:
    """Echo progress updates until the batch reaches a terminal status."""
    while True:
        try:
            state = subscription.get(timeout=_POLL_SECONDS)
        except SubscriptionClosed:
            return
        if state is None:
            if future.done():
                return
            continue
        if state.message:
            typer.echo(_render(state))
        if state.status.is_terminal:
            return


@app.command("scrape")
def scrape(
    delay: Optional[float] = typer.Option(
        None, help="Seconds to wait between articles (default: SCRAPE_DELAY)."
    ),
    show_browser: bool = typer.Option(
        False, "--show-browser", help="Run Chromium with a visible window."
    ),
) -> None:
    """Log in, discover article links and store every new article.

    Press Ctrl-C once to cancel; articles already stored are kept.
    """
    settings.ensure_workspace()
    config = dataclasses.replace(settings, headless=False) if show_browser else settings
    scraper = Scraper(config, delay=delay)
    # Room for every update of a long batch; the CLI is the only reader.
    subscription = scraper.progress.subscribe(maxsize=1024)
    try:
        future = scraper.start_batch()
        try:
            _follow(subscription, future)
        except KeyboardInterrupt:
            typer.echo("[scrape] Cancelling after the current article …")
            scraper.cancel()
            _follow(subscription, future)

        try:
            added = future.result()
        except Exception as exc:
            typer.echo(f"❌ Scrape failed: {exc}")
            raise typer.Exit(code=1)
    finally:
        scraper.progress.unsubscribe(subscription)
        scraper.close()

    typer.echo(f"[scrape] Done: {added} new articles stored in {settings.db_path}")


# ---------------------------------------------------------------------------
# Serve
# ---------------------------------------------------------------------------
@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default: HOST)."),
    port: Optional[int] = typer.Option(None, help="Port (default: PORT)."),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "kiln.api.app:app",
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
