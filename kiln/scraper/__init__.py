"""Scraper package: browser session, login, link discovery, extraction and batches."""

from kiln.scraper.auth import Authenticator, LoginSelectors
from kiln.scraper.extractor import ContentExtractor, parse_article
from kiln.scraper.links import LinkDiscoverer, filter_links
from kiln.scraper.orchestrator import CancelToken, Scraper
from kiln.scraper.progress import (
    ProgressBroadcaster,
    ProgressState,
    ProgressStatus,
    Subscription,
    SubscriptionClosed,
)
from kiln.scraper.session import SessionManager

__all__ = [
    "Authenticator",
    "CancelToken",
    "ContentExtractor",
    "LinkDiscoverer",
    "LoginSelectors",
    "ProgressBroadcaster",
    "ProgressState",
    "ProgressStatus",
    "Scraper",
    "SessionManager",
    "Subscription",
    "SubscriptionClosed",
    "filter_links",
    "parse_article",
]
