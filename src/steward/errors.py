"""Error taxonomy for owner election.

Only SessionError escapes to callers (at startup). Everything else is
handled inside the campaign loops by retrying.
"""

from __future__ import annotations

import asyncio


class StewardError(Exception):
    """Base class for all steward errors."""


class CoordinationError(StewardError):
    """The coordination service rejected or failed a request."""


class SessionError(StewardError):
    """A leased session could not be created within the retry budget."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class ElectionError(CoordinationError):
    """A campaign or leader query failed for a transient reason."""


class NoLeaderError(ElectionError):
    """No candidate is currently recorded as the winner of an election."""

    def __init__(self, key: str):
        super().__init__(f"no leader recorded for '{key}'")
        self.key = key


def is_context_finished(exc: BaseException) -> bool:
    """Return True if ``exc`` means the governing task was cancelled or timed out."""
    return isinstance(exc, (asyncio.CancelledError, asyncio.TimeoutError, TimeoutError))
