"""Session lifecycle for owner election.

One session is shared by both campaign loops. It is replaced wholesale when
it dies, and replacement is serialized so that two loops noticing the same
expiry end up on the same new session.
"""

from __future__ import annotations

import asyncio
import logging

from steward.config import settings
from steward.coordination.base import CoordinationClient, Session
from steward.errors import SessionError, is_context_finished
from steward.observability.metrics import record_session_created
from steward.owner.retry import UNLIMITED_RETRIES, retry_async

logger = logging.getLogger(__name__)

STARTUP_SESSION_RETRIES = 3
UNLIMITED_SESSION_RETRIES = UNLIMITED_RETRIES


class SessionManager:
    """Creates and recreates the leased session.

    Args:
        client: Coordination service client
        ttl: Session TTL in seconds
        retry_interval: Seconds to wait between failed attempts
    """

    def __init__(
        self,
        client: CoordinationClient,
        ttl: int | None = None,
        retry_interval: float | None = None,
    ):
        self._client = client
        self.ttl = ttl if ttl is not None else settings.session_ttl
        self.retry_interval = (
            retry_interval if retry_interval is not None else settings.session_retry_interval
        )
        self._lock = asyncio.Lock()
        self._session: Session | None = None

    @property
    def current(self) -> Session:
        """The current session handle."""
        if self._session is None:
            raise RuntimeError("No session has been acquired")
        return self._session

    @property
    def has_session(self) -> bool:
        return self._session is not None

    async def acquire(self, retry_budget: int = STARTUP_SESSION_RETRIES) -> Session:
        """Create a new session, retrying up to ``retry_budget`` attempts.

        Raises:
            SessionError: If every attempt failed.
        """
        async with self._lock:
            return await self._create(retry_budget)

    async def renew(self, stale: Session) -> Session:
        """Replace ``stale`` with a live session.

        If another caller already replaced it, the replacement is returned
        instead of creating a second session.
        """
        async with self._lock:
            current = self._session
            if current is not None and current is not stale and not current.is_done:
                return current
            logger.info("Coordination session is done, creating a new one")
            return await self._create(UNLIMITED_SESSION_RETRIES)

    async def close(self) -> None:
        """Release the current session."""
        async with self._lock:
            session, self._session = self._session, None
        if session is not None:
            await session.close()
            logger.info(f"Released session {session.lease_id:x}")

    async def _create(self, retry_budget: int) -> Session:
        try:
            session = await retry_async(
                lambda: self._client.create_session(self.ttl),
                attempts=retry_budget,
                interval=self.retry_interval,
                description="create session",
            )
        except Exception as e:
            if is_context_finished(e):
                raise
            raise SessionError(
                f"failed to create session after {retry_budget} attempts: {e}",
                attempts=retry_budget,
            ) from e

        self._session = session
        record_session_created()
        logger.info(f"Created session {session.lease_id:x} with TTL {session.ttl}s")
        return session
