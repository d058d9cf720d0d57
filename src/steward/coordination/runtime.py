"""Runtime wiring for the coordination service backend."""

from __future__ import annotations

import logging

from steward.config import settings
from steward.coordination.base import CoordinationClient
from steward.coordination.memory import InMemoryCoordinator
from steward.coordination.redis import RedisCoordinator

logger = logging.getLogger(__name__)


def create_coordinator(backend: str | None = None) -> CoordinationClient:
    """Create a coordination client based on configuration."""
    backend = (backend or settings.coordination_backend).lower()

    if backend in {"memory", "inmemory", "in_memory"}:
        logger.warning("Using in-memory coordination; ownership is local to this process")
        return InMemoryCoordinator()

    if backend == "redis":
        return RedisCoordinator()

    raise ValueError("Unsupported coordination_backend. Supported values: memory, redis.")
