"""Global pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import pytest
import pytest_asyncio

from steward.coordination.memory import InMemoryCoordinator
from steward.owner.manager import OwnerManager
from tests.helpers import BG_OWNER_KEY, OWNER_KEY


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: tests that need a running Redis container")


@pytest.fixture
def coordinator() -> InMemoryCoordinator:
    """Create a fresh in-memory coordination service."""
    return InMemoryCoordinator()


@pytest.fixture
def make_manager(
    coordinator: InMemoryCoordinator,
) -> Callable[..., OwnerManager]:
    """Factory for managers sharing the in-memory service."""

    def factory(identity: str, **kwargs) -> OwnerManager:
        kwargs.setdefault("owner_key", OWNER_KEY)
        kwargs.setdefault("background_owner_key", BG_OWNER_KEY)
        kwargs.setdefault("retry_interval", 0.01)
        return OwnerManager(kwargs.pop("client", coordinator), identity=identity, **kwargs)

    return factory


@pytest_asyncio.fixture
async def managers() -> AsyncIterator[list[OwnerManager]]:
    """Collects managers started by a test and stops them afterwards."""
    started: list[OwnerManager] = []
    yield started
    for manager in started:
        await manager.stop()
