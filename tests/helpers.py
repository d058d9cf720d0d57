"""Shared test helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

OWNER_KEY = "/test/ddl/owner"
BG_OWNER_KEY = "/test/ddl/bg/owner"


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
