"""Article store commands: list, show, delete, clear."""

from __future__ import annotations

import typer

from kiln.db import get_connection, init_db
from kiln.db.articles import (
    ArticleNotFound,
    delete_all_articles,
    delete_article,
    get_article,
    list_articles,
)

articles_app = typer.Typer(help="Inspect and manage stored articles.", no_args_is_help=True)


def _open():
    conn = get_connection()
    init_db(conn)
    return conn


@articles_app.command("list")
def articles_list(
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum number of articles."),
) -> None:
    """List stored articles, newest first."""
    conn = _open()
    try:
        articles = list_articles(conn, limit=limit)
    finally:
        conn.close()

    if not articles:
        typer.echo("No articles stored yet.")
        return
    for a in articles:
        published = a.published_at.date().isoformat() if a.published_at else "----------"
        typer.echo(f"  {a.id:>5}  {published}  {a.title or '(untitled)'}")


@articles_app.command("show")
def articles_show(
    article_id: int = typer.Argument(..., help="Article id."),
    text: bool = typer.Option(False, "--text", help="Print the extracted body text."),
) -> None:
    """Show one article's metadata (and optionally its text)."""
    conn = _open()
    try:
        article = get_article(conn, article_id)
    except ArticleNotFound as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=1)
    finally:
        conn.close()

    typer.echo(f"Title     : {article.title or '(untitled)'}")
    typer.echo(f"URL       : {article.url}")
    typer.echo(f"Author    : {article.author or '(unknown)'}")
    typer.echo(f"Published : {article.published_at.isoformat() if article.published_at else '(unknown)'}")
    typer.echo(f"Source    : {article.source}")
    if text:
        typer.echo("")
        typer.echo(article.content_text or "")


@articles_app.command("delete")
def articles_delete(
    article_id: int = typer.Argument(..., help="Article id."),
) -> None:
    """Delete one article."""
    conn = _open()
    try:
        delete_article(conn, article_id)
    except ArticleNotFound as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=1)
    finally:
        conn.close()
    typer.echo(f"✅ Deleted article {article_id}")


@articles_app.command("clear")
def articles_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Delete every stored article."""
    if not yes and not typer.confirm("Delete ALL stored articles?"):
        typer.echo("Aborted.")
        raise typer.Exit(code=1)
    conn = _open()
    try:
        deleted = delete_all_articles(conn)
    finally:
        conn.close()
    typer.echo(f"✅ Deleted {deleted} articles")
