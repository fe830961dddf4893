"""Kiln — a personal scraper that turns a gated news site into an RSS feed."""

__version__ = "0.3.0"
