"""Observability for podrole.

Provides structured logging and Prometheus metrics:
- JSON structured logging with election context
- Leadership gauge for Prometheus scraping
"""

from podrole.observability.logging import (
    LogContext,
    configure_logging,
)
from podrole.observability.metrics import LeadershipMetrics

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    # Metrics
    "LeadershipMetrics",
]
