"""In-process coordination service.

Implements etcd-style election semantics without any external service:
candidate records are ordered by creation revision and the lowest live
revision is the winner. Suitable for single-instance deployments and for
exercising owner election in tests.

Leases never lapse on their own here; use ``expire_session()`` to simulate
a lost keepalive.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass

from steward.coordination.base import (
    CoordinationClient,
    EventType,
    LeaderRecord,
    Session,
    WatchEvent,
    WatchResponse,
    candidate_key,
)
from steward.errors import ElectionError, NoLeaderError

logger = logging.getLogger(__name__)


@dataclass
class _Record:
    value: str
    revision: int
    lease_id: int


class InMemorySession(Session):
    """Session backed by an InMemoryCoordinator lease."""

    def __init__(self, coordinator: InMemoryCoordinator, lease_id: int, ttl: int):
        super().__init__(lease_id, ttl)
        self._coordinator = coordinator

    async def close(self) -> None:
        self._coordinator._revoke(self.lease_id)


class _WatchStream:
    """Queue-backed watch subscription registered at creation time."""

    def __init__(self, coordinator: InMemoryCoordinator, key: str):
        self._coordinator = coordinator
        self._key = key
        self._queue: asyncio.Queue[WatchResponse | None] = asyncio.Queue()
        self._closed = False

    def put(self, response: WatchResponse | None) -> None:
        self._queue.put_nowait(response)

    def __aiter__(self) -> _WatchStream:
        return self

    async def __anext__(self) -> WatchResponse:
        if self._closed:
            raise StopAsyncIteration
        response = await self._queue.get()
        if response is None:
            await self.aclose()
            raise StopAsyncIteration
        return response

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            self._coordinator._unregister_watch(self._key, self)


class InMemoryCoordinator(CoordinationClient):
    """Single-winner coordination service living in this process.

    Every request is appended to ``calls`` as ``(operation, key)`` so tests
    can assert what was issued and when. ``fail_next()`` injects errors
    into upcoming requests.
    """

    def __init__(self) -> None:
        self._revision = 0
        self._next_lease_id = 0x1000
        self._sessions: dict[int, InMemorySession] = {}
        self._records: dict[str, _Record] = {}
        self._watches: dict[str, list[_WatchStream]] = defaultdict(list)
        self._changed = asyncio.Event()
        self._faults: dict[str, list[BaseException]] = defaultdict(list)
        self.calls: list[tuple[str, str]] = []

    # -------------------------------------------------------------------------
    # Test hooks
    # -------------------------------------------------------------------------

    def fail_next(self, operation: str, error: BaseException, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        self._faults[operation].extend([error] * times)

    def expire_session(self, lease_id: int) -> None:
        """Expire a lease as if its keepalive had stopped."""
        logger.debug(f"Expiring lease {lease_id:x}")
        self._revoke(lease_id)

    def delete_key(self, key: str) -> None:
        """Delete a record directly, bypassing its owner."""
        self._delete(key)

    def cancel_watches(self, key: str) -> None:
        """Terminate every watch on ``key`` as the service would on compaction."""
        for stream in list(self._watches.get(key, [])):
            stream.put(WatchResponse(canceled=True))
            stream.put(None)

    def put_value(self, key: str, value: str) -> None:
        """Overwrite the value of an existing record, keeping its revision."""
        record = self._records[key]
        record.value = value
        self._notify(key, WatchEvent(EventType.PUT, key, value))

    @property
    def sessions(self) -> dict[int, InMemorySession]:
        """Live sessions keyed by lease id."""
        return dict(self._sessions)

    def records(self, prefix: str = "") -> dict[str, str]:
        """Snapshot of record values, optionally under a key prefix."""
        return {k: r.value for k, r in self._records.items() if k.startswith(prefix)}

    def watch_count(self, key: str) -> int:
        """Number of open watches on ``key``."""
        return len(self._watches.get(key, []))

    # -------------------------------------------------------------------------
    # CoordinationClient
    # -------------------------------------------------------------------------

    async def create_session(self, ttl: int) -> Session:
        self._request("create_session", "")
        self._next_lease_id += 1
        session = InMemorySession(self, self._next_lease_id, ttl)
        self._sessions[session.lease_id] = session
        return session

    async def campaign(self, session: Session, key: str, value: str) -> LeaderRecord:
        self._request("campaign", key)
        if session.is_done or session.lease_id not in self._sessions:
            raise ElectionError(f"session {session.lease_id:x} is not alive")

        own_key = candidate_key(key, session.lease_id)
        record = self._records.get(own_key)
        if record is None:
            self._revision += 1
            record = _Record(value=value, revision=self._revision, lease_id=session.lease_id)
            self._records[own_key] = record
        else:
            record.value = value
        self._notify(own_key, WatchEvent(EventType.PUT, own_key, value))

        try:
            while True:
                if session.is_done:
                    raise ElectionError(f"session {session.lease_id:x} expired during campaign")
                winner = self._winner(key)
                if winner is not None and winner[0] == own_key:
                    return LeaderRecord(key=own_key, value=value, revision=record.revision)
                await self._changed.wait()
        except asyncio.CancelledError:
            self._delete(own_key)
            raise

    async def leader(self, key: str) -> LeaderRecord:
        self._request("leader", key)
        winner = self._winner(key)
        if winner is None:
            raise NoLeaderError(key)
        record_key, record = winner
        return LeaderRecord(key=record_key, value=record.value, revision=record.revision)

    async def resign(self, session: Session, key: str) -> None:
        self._request("resign", key)
        own_key = candidate_key(key, session.lease_id)
        if own_key in self._records:
            self._delete(own_key)

    def watch(self, record_key: str) -> _WatchStream:
        self._request("watch", record_key)
        stream = _WatchStream(self, record_key)
        self._watches[record_key].append(stream)
        # Watching starts at the record's revision, so a record that is
        # already gone reports its deletion immediately.
        if record_key not in self._records:
            stream.put(WatchResponse(events=(WatchEvent(EventType.DELETE, record_key),)))
        return stream

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _request(self, operation: str, key: str) -> None:
        self.calls.append((operation, key))
        faults = self._faults.get(operation)
        if faults:
            raise faults.pop(0)

    def _winner(self, key: str) -> tuple[str, _Record] | None:
        prefix = f"{key.rstrip('/')}/"
        candidates = [(k, r) for k, r in self._records.items() if k.startswith(prefix)]
        if not candidates:
            return None
        return min(candidates, key=lambda item: item[1].revision)

    def _revoke(self, lease_id: int) -> None:
        session = self._sessions.pop(lease_id, None)
        for key, record in list(self._records.items()):
            if record.lease_id == lease_id:
                self._delete(key)
        if session is not None:
            session._mark_done()
        self._wake()

    def _delete(self, key: str) -> None:
        if self._records.pop(key, None) is None:
            return
        self._notify(key, WatchEvent(EventType.DELETE, key))

    def _notify(self, key: str, event: WatchEvent) -> None:
        for stream in self._watches.get(key, []):
            stream.put(WatchResponse(events=(event,)))
        self._wake()

    def _wake(self) -> None:
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    def _unregister_watch(self, key: str, stream: _WatchStream) -> None:
        streams = self._watches.get(key)
        if streams and stream in streams:
            streams.remove(stream)
        if not streams:
            self._watches.pop(key, None)
