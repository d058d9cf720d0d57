"""Observability module for Steward.

Provides structured logging and metrics:
- JSON or console logging with owner and duty context
- Prometheus metrics for campaigns, ownership and sessions
"""

from steward.observability.logging import (
    LogContext,
    configure_logging,
    duty_var,
    owner_id_var,
)
from steward.observability.metrics import (
    get_metrics,
    metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "owner_id_var",
    "duty_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
]
