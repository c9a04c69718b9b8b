"""Logging configuration and counters for the suggestion pipeline."""

from __future__ import annotations

import logging
import os

import structlog
from prometheus_client import Counter


FILTERED_CODES = Counter(
    "codepilot_filtered_codes_total",
    "Model suggested codes dropped by the safety cleaner",
    ("code_class",),
)

SOURCE_FAILURES = Counter(
    "codepilot_suggestion_source_failures_total",
    "Suggestion source calls that raised",
    ("kind", "source"),
)

FALLBACKS_USED = Counter(
    "codepilot_suggestion_fallbacks_total",
    "Suggestion requests served by the fallback source",
    ("primary", "fallback"),
)


def configure_logging(level: str | None = None) -> None:
    """Route structlog through the stdlib logger and render JSON lines."""

    resolved = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(format="%(message)s", level=getattr(logging, resolved, logging.INFO))
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


__all__ = ["FILTERED_CODES", "SOURCE_FAILURES", "FALLBACKS_USED", "configure_logging"]
