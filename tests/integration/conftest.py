"""Integration test fixtures using Docker.

Starts a throwaway Redis container so the Redis coordination backend can be
exercised against a real server.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import pytest
import pytest_asyncio
import redis.asyncio as redis

from steward.coordination.redis import RedisCoordinator

REDIS_IMAGE = "redis:7-alpine"


@dataclass
class RedisContainer:
    """A running Redis container and the address its port is published on."""

    container: Any
    host: str

    @property
    def url(self) -> str:
        self.container.reload()
        bindings = self.container.attrs["NetworkSettings"]["Ports"].get("6379/tcp")
        if not bindings:
            raise RuntimeError(f"Redis port not published on {self.container.short_id}")
        return f"redis://{self.host}:{bindings[0]['HostPort']}/0"


def _docker_host(client: Any) -> str:
    base_url = client.api.base_url
    if base_url.startswith(("unix://", "npipe://", "http+docker://")):
        return "localhost"
    return urlparse(base_url).hostname or "localhost"


@contextmanager
def _run_redis(client: Any) -> Iterator[RedisContainer]:
    container = client.containers.run(REDIS_IMAGE, detach=True, ports={"6379/tcp": None})
    try:
        yield RedisContainer(container=container, host=_docker_host(client))
    finally:
        container.remove(force=True, v=True)


@pytest.fixture(scope="session")
def docker_client():
    """Create a Docker client or skip if Docker is unavailable."""
    docker = pytest.importorskip("docker")
    try:
        client = docker.from_env()
        client.ping()
    except Exception as exc:
        pytest.skip(f"Docker not available: {exc}")
    yield client
    client.close()


@pytest.fixture(scope="session")
def redis_url(docker_client) -> Iterator[str]:
    """Start a Redis container for the test session."""
    with _run_redis(docker_client) as container:
        yield container.url


@pytest_asyncio.fixture
async def redis_client(redis_url: str) -> AsyncIterator[redis.Redis]:
    """Create a Redis client and wipe the database after each test."""
    client = redis.from_url(redis_url, decode_responses=True)
    await _wait_for_redis(client)
    yield client
    await client.flushdb()
    await client.aclose()


@pytest_asyncio.fixture
async def redis_coordinator(redis_client: redis.Redis) -> AsyncIterator[RedisCoordinator]:
    """Coordinator on the test Redis with fast watch polling."""
    coordinator = RedisCoordinator(redis_client, poll_interval=0.05)
    yield coordinator
    await coordinator.close()


async def _wait_for_redis(client: redis.Redis, timeout: float = 30.0) -> None:
    """Wait for Redis to accept connections."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            await client.ping()
            return
        except Exception:
            if time.monotonic() >= deadline:
                raise
            await asyncio.sleep(0.5)
