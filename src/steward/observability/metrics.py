"""Prometheus metrics for owner election.

Provides:
- Campaign attempts and failures per duty
- Current ownership per duty (1 = held)
- Session creations and leadership losses

Usage:
    from steward.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.campaigns_total.labels(duty="primary").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import REGISTRY, Counter, Gauge, generate_latest

from steward.config import settings

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    campaigns_total: Any = None
    campaign_errors_total: Any = None
    ownership: Any = None
    session_creations_total: Any = None
    leadership_losses_total: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = REGISTRY

        self.campaigns_total = Counter(
            "steward_campaigns_total",
            "Campaign attempts",
            ["duty"],
        )

        self.campaign_errors_total = Counter(
            "steward_campaign_errors_total",
            "Campaign attempts that failed before confirming leadership",
            ["duty", "stage"],
        )

        self.ownership = Gauge(
            "steward_ownership",
            "Whether this process currently holds the duty",
            ["duty"],
        )

        self.session_creations_total = Counter(
            "steward_session_creations_total",
            "Sessions created against the coordination service",
        )

        self.leadership_losses_total = Counter(
            "steward_leadership_losses_total",
            "Leadership losses detected by the watcher",
            ["duty", "reason"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics or self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def record_campaign(duty: str) -> None:
    """Record a campaign attempt."""
    metrics = get_metrics()
    if metrics.campaigns_total:
        metrics.campaigns_total.labels(duty=duty).inc()


def record_campaign_error(duty: str, stage: str) -> None:
    """Record a failed campaign attempt.

    Args:
        duty: Duty name (primary, background)
        stage: Where it failed (campaign, leader, mismatch)
    """
    metrics = get_metrics()
    if metrics.campaign_errors_total:
        metrics.campaign_errors_total.labels(duty=duty, stage=stage).inc()


def set_ownership(duty: str, held: bool) -> None:
    """Publish the current ownership of a duty."""
    metrics = get_metrics()
    if metrics.ownership:
        metrics.ownership.labels(duty=duty).set(1 if held else 0)


def record_session_created() -> None:
    """Record a new session."""
    metrics = get_metrics()
    if metrics.session_creations_total:
        metrics.session_creations_total.inc()


def record_leadership_lost(duty: str, reason: str) -> None:
    """Record a leadership loss and why it happened."""
    metrics = get_metrics()
    if metrics.leadership_losses_total:
        metrics.leadership_losses_total.labels(duty=duty, reason=reason).inc()
