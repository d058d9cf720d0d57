"""Coordination service interface used by owner election.

A coordination service provides three primitives:
- Leased sessions that die unless kept alive within their TTL
- A single-winner election scoped to a key namespace
- Change notifications (watch) on individual records

Backends:
- InMemoryCoordinator: single-process service for development and tests
- RedisCoordinator: Redis-backed service for multi-instance deployments
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum


class EventType(str, Enum):
    """Kind of change reported by a watch."""

    PUT = "put"
    DELETE = "delete"


@dataclass(frozen=True)
class WatchEvent:
    """A single change to a watched record."""

    type: EventType
    key: str
    value: str | None = None


@dataclass(frozen=True)
class WatchResponse:
    """A batch of watch events.

    ``canceled`` is set when the service terminated the subscription
    (e.g. the record history was compacted or the connection was lost).
    """

    events: tuple[WatchEvent, ...] = ()
    canceled: bool = False


@dataclass(frozen=True)
class LeaderRecord:
    """The recorded winner of an election."""

    key: str
    value: str
    revision: int = 0


class Session(ABC):
    """Lease-backed liveness token.

    A session is never mutated into a new lease: once done it stays done
    and must be replaced by a fresh session.
    """

    def __init__(self, lease_id: int, ttl: int):
        self.lease_id = lease_id
        self.ttl = ttl
        self._done = asyncio.Event()

    @property
    def is_done(self) -> bool:
        """Check if the lease has expired or the session was closed."""
        return self._done.is_set()

    async def wait_done(self) -> None:
        """Block until the session dies."""
        await self._done.wait()

    def _mark_done(self) -> None:
        self._done.set()

    @abstractmethod
    async def close(self) -> None:
        """Revoke the lease and stop keeping it alive."""
        pass

    def __repr__(self) -> str:
        state = "done" if self.is_done else "alive"
        return f"<{type(self).__name__} lease={self.lease_id:x} ttl={self.ttl} {state}>"


WatchStream = AsyncIterator[WatchResponse]


class CoordinationClient(ABC):
    """Abstract coordination service client."""

    @abstractmethod
    async def create_session(self, ttl: int) -> Session:
        """Create a new leased session kept alive until closed or expired."""
        pass

    @abstractmethod
    async def campaign(self, session: Session, key: str, value: str) -> LeaderRecord:
        """Block until ``value`` wins the election at ``key``.

        Returns the candidate record written for this session.
        """
        pass

    @abstractmethod
    async def leader(self, key: str) -> LeaderRecord:
        """Return the current winner at ``key``.

        Raises:
            NoLeaderError: If no candidate is recorded.
        """
        pass

    @abstractmethod
    async def resign(self, session: Session, key: str) -> None:
        """Remove this session's candidate record at ``key`` if present."""
        pass

    @abstractmethod
    def watch(self, record_key: str) -> WatchStream:
        """Subscribe to changes of ``record_key``.

        The returned async iterator must be closed with ``aclose()``.
        """
        pass

    async def close(self) -> None:
        """Release client resources."""
        return None


@dataclass
class Election:
    """A single campaign attempt scoped to (session, key).

    Created anew for every attempt; its only durable effect is the
    candidate record it writes.
    """

    client: CoordinationClient
    session: Session
    key: str
    record: LeaderRecord | None = field(default=None, init=False)

    async def campaign(self, value: str) -> None:
        """Block until this candidate wins."""
        self.record = await self.client.campaign(self.session, self.key, value)

    async def leader(self) -> LeaderRecord:
        """Query the recorded winner of this election."""
        return await self.client.leader(self.key)

    async def resign(self) -> None:
        """Withdraw the candidate record."""
        await self.client.resign(self.session, self.key)
        self.record = None


def candidate_key(key: str, lease_id: int) -> str:
    """Per-session record key under a duty namespace."""
    return f"{key.rstrip('/')}/{lease_id:x}"
