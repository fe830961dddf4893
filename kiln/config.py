"""Centralised settings for Kiln.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from the package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").strip().lower()
    if not value:
        return default
    return value in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("KILN_WORKSPACE", Path.home() / ".kiln")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "kiln.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    @property
    def session_dir(self) -> Path:
        """Browser user-data directory; cookies here survive between runs."""
        return self.workspace_dir / "sessions"

    # ------------------------------------------------------------------
    # Target site
    # ------------------------------------------------------------------
    site_url: str = field(
        default_factory=lambda: os.environ.get("SITE_URL", "https://gasetten.se")
    )
    site_source: str = field(
        default_factory=lambda: os.environ.get("SITE_SOURCE", "gasetten")
    )
    login_path: str = field(
        default_factory=lambda: os.environ.get("SITE_LOGIN_PATH", "/min-profil/")
    )
    listing_path: str = field(
        default_factory=lambda: os.environ.get("SITE_LISTING_PATH", "/category/malmo-ff/")
    )
    site_username: str = field(
        default_factory=lambda: os.environ.get("SITE_USERNAME", "")
    )
    site_password: str = field(
        default_factory=lambda: os.environ.get("SITE_PASSWORD", "")
    )

    @property
    def login_url(self) -> str:
        """Authenticated-area URL; a valid session lands here without a form."""
        return self.site_url.rstrip("/") + self.login_path

    @property
    def listing_url(self) -> str:
        return self.site_url.rstrip("/") + self.listing_path

    # ------------------------------------------------------------------
    # Browser / scraper
    # ------------------------------------------------------------------
    headless: bool = field(default_factory=lambda: _env_bool("SCRAPER_HEADLESS", True))
    browser_cdp_url: str = field(
        default_factory=lambda: os.environ.get("BROWSER_CDP_URL", "")
    )
    page_timeout: float = field(
        default_factory=lambda: float(os.environ.get("PAGE_TIMEOUT", "30.0"))
    )
    settle_delay: float = field(
        default_factory=lambda: float(os.environ.get("SETTLE_DELAY", "0.5"))
    )
    scrape_delay: float = field(
        default_factory=lambda: float(os.environ.get("SCRAPE_DELAY", "1.0"))
    )
    progress_buffer: int = field(
        default_factory=lambda: int(os.environ.get("PROGRESS_BUFFER", "10"))
    )

    # ------------------------------------------------------------------
    # RSS feed
    # ------------------------------------------------------------------
    feed_title: str = field(
        default_factory=lambda: os.environ.get("FEED_TITLE", "My Personal Kiln Feed")
    )
    feed_description: str = field(
        default_factory=lambda: os.environ.get("FEED_DESCRIPTION", "Articles from Gasetten")
    )
    feed_link: str = field(
        default_factory=lambda: os.environ.get("FEED_LINK", "http://localhost:8080")
    )
    feed_author: str = field(
        default_factory=lambda: os.environ.get("FEED_AUTHOR", "Kiln User")
    )
    feed_days: int = field(
        default_factory=lambda: int(os.environ.get("FEED_DAYS", "30"))
    )
    feed_limit: int = field(
        default_factory=lambda: int(os.environ.get("FEED_LIMIT", "50"))
    )

    # ------------------------------------------------------------------
    # HTTP server
    # ------------------------------------------------------------------
    host: str = field(default_factory=lambda: os.environ.get("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.environ.get("PORT", "8080")))

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )

    def ensure_workspace(self) -> None:
        """Create the workspace and session directories if they do not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)
        self.session_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton, import this everywhere:
#   from kiln.config import settings
settings = Settings()
