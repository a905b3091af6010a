"""structlog setup for collectorstack.

Events are rendered as one JSON object per line. Loggers obtained from
``get_logger`` are lazy proxies, so reconfiguring (for example once per CLI
invocation) applies to module-level loggers too.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog


def setup_logging(level: str = "info", stream: TextIO | None = None) -> None:
    """Send events at ``level`` or above to ``stream`` (stderr by default)."""
    threshold = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        logger_factory=structlog.WriteLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str) -> structlog.typing.FilteringBoundLogger:
    """Logger whose events carry ``component``."""
    return structlog.get_logger(component=component)  # type: ignore[no-any-return]
