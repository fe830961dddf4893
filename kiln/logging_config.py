"""Structured logging configuration using structlog.

Call ``configure_logging()`` once at startup (the API lifespan and the CLI
both do).  Modules then log through structlog::

    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("scraper.article_saved", url=url, article_id=article.id)

Records emitted through the stdlib ``logging`` API (Playwright, uvicorn,
httpx) are routed through the same formatter.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import EventDict, WrappedLogger

_SECRET_SUBSTRINGS: frozenset[str] = frozenset({
    "password",
    "secret",
    "token",
    "cookie",
    "credential",
    "authorization",
})
"""Lower-cased substrings of event keys whose values are never rendered."""


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Replace values of secret-bearing keys with ``"[REDACTED]"``."""
    for key in list(event_dict.keys()):
        if any(secret in key.lower() for secret in _SECRET_SUBSTRINGS):
            event_dict[key] = "[REDACTED]"
    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog and the stdlib root logger.

    At ``DEBUG`` the console renderer is used; any other level renders
    newline-delimited JSON.  Safe to call more than once.

    Args:
        log_level: ``"DEBUG"``, ``"INFO"``, ``"WARNING"``, ``"ERROR"`` or
            ``"CRITICAL"`` (case-insensitive).
    """
    level_upper = log_level.upper()
    numeric_level = getattr(logging, level_upper, logging.INFO)
    is_development = level_upper == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if is_development:
        final_renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(
            colors=True,
        )
    else:
        final_renderer = structlog.processors.JSONRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            final_renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    if not is_development:
        for noisy_logger in ("uvicorn.access", "httpx", "httpcore", "trafilatura", "htmldate"):
            logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
