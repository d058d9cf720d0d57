"""Retry helper shared by the session manager.

Failures are classified by a predicate: terminal errors are re-raised at
once, everything else is retried after a fixed interval until the attempt
budget is spent.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

from steward.errors import is_context_finished

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNLIMITED_RETRIES = sys.maxsize


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    interval: float,
    is_terminal: Callable[[BaseException], bool] = is_context_finished,
    description: str = "run operation",
) -> T:
    """Run ``operation`` until it succeeds or the budget is exhausted.

    Args:
        operation: Zero-argument coroutine factory
        attempts: Maximum number of attempts (UNLIMITED_RETRIES for no limit)
        interval: Seconds to wait between attempts
        is_terminal: Predicate for errors that must not be retried
        description: Used in log messages ("failed to <description>")

    Returns:
        The result of the first successful attempt.

    Raises:
        The terminal error, or the last error once the budget is spent.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    budget = "unlimited" if attempts == UNLIMITED_RETRIES else str(attempts)
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as e:
            logger.warning(f"Failed to {description} (attempt {attempt}/{budget}): {e}")
            if is_terminal(e) or attempt >= attempts:
                raise
        await asyncio.sleep(interval)
