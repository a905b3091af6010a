"""Logging and metrics for collectorstack."""

from collectorstack.observability.logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
