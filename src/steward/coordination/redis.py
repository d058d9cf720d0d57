"""Redis-backed coordination service.

Emulates lease-backed sessions and revision-ordered elections on Redis:
1. A session is a lease key with a TTL, refreshed by a keepalive task
2. Candidates write a record key attached to their lease and register it
   in a per-election sorted set scored by a global revision counter
3. The winner is the lowest-revision candidate whose record is still alive
4. Watches poll the winning record and report value changes and deletion

All multi-key updates run as Lua scripts so they are atomic.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from steward.config import settings
from steward.coordination.base import (
    CoordinationClient,
    EventType,
    LeaderRecord,
    Session,
    WatchEvent,
    WatchResponse,
    candidate_key,
)
from steward.errors import CoordinationError, ElectionError, NoLeaderError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Key layout
KEY_PREFIX = "steward:"
LEASE_SEQ_KEY = f"{KEY_PREFIX}lease:seq"
REVISION_KEY = f"{KEY_PREFIX}revision"

# Module-level client
_redis_client: Redis | None = None


async def get_redis() -> Redis:
    """Get or create the shared Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    """Close the shared Redis client."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None


def _lease_key(lease_id: int) -> str:
    return f"{KEY_PREFIX}lease:{lease_id:x}"


def _lease_records_key(lease_id: int) -> str:
    return f"{KEY_PREFIX}lease:{lease_id:x}:records"


def _election_key(key: str) -> str:
    return f"{KEY_PREFIX}election:{key.rstrip('/')}"


def _text(value: Any) -> str:
    """Decode replies from clients created without decode_responses."""
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


# KEYS: lease, lease records, election zset, record, revision counter
# ARGV: value, ttl ms
_CAMPAIGN_LUA = """
if redis.call("exists", KEYS[1]) == 0 then
    return -1
end
local rev = redis.call("hget", KEYS[4], "rev")
if not rev then
    rev = redis.call("incr", KEYS[5])
    redis.call("zadd", KEYS[3], rev, KEYS[4])
end
redis.call("hset", KEYS[4], "value", ARGV[1], "rev", rev)
redis.call("pexpire", KEYS[4], ARGV[2])
redis.call("sadd", KEYS[2], KEYS[4])
redis.call("pexpire", KEYS[2], ARGV[2])
return tonumber(rev)
"""

# KEYS: election zset
_LEADER_LUA = """
local members = redis.call("zrange", KEYS[1], 0, -1, "WITHSCORES")
for i = 1, #members, 2 do
    local value = redis.call("hget", members[i], "value")
    if value then
        return {members[i], value, members[i + 1]}
    end
    redis.call("zrem", KEYS[1], members[i])
end
return false
"""

# KEYS: lease, lease records
# ARGV: ttl ms
_KEEPALIVE_LUA = """
if redis.call("exists", KEYS[1]) == 0 then
    return 0
end
redis.call("pexpire", KEYS[1], ARGV[1])
local records = redis.call("smembers", KEYS[2])
for _, record in ipairs(records) do
    redis.call("pexpire", record, ARGV[1])
end
if #records > 0 then
    redis.call("pexpire", KEYS[2], ARGV[1])
end
return 1
"""

# KEYS: lease, lease records
_REVOKE_LUA = """
local records = redis.call("smembers", KEYS[2])
for _, record in ipairs(records) do
    redis.call("del", record)
end
return redis.call("del", KEYS[1], KEYS[2])
"""

# KEYS: election zset, record, lease records
_RESIGN_LUA = """
redis.call("zrem", KEYS[1], KEYS[2])
redis.call("srem", KEYS[3], KEYS[2])
return redis.call("del", KEYS[2])
"""


class RedisSession(Session):
    """Lease key kept alive by a background task.

    The session is marked done when the lease key disappears or when no
    keepalive has succeeded for a full TTL.
    """

    def __init__(self, coordinator: RedisCoordinator, lease_id: int, ttl: int):
        super().__init__(lease_id, ttl)
        self._coordinator = coordinator
        self._last_renewal = time.monotonic()
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._keepalive_loop())

    async def _keepalive_loop(self) -> None:
        interval = max(self.ttl / 3, 0.1)
        while not self.is_done:
            await asyncio.sleep(interval)
            try:
                alive = await self._coordinator._keepalive(self.lease_id, self.ttl)
            except (RedisError, OSError) as e:
                logger.warning(f"Keepalive for lease {self.lease_id:x} failed: {e}")
                if time.monotonic() - self._last_renewal >= self.ttl:
                    logger.warning(f"Lease {self.lease_id:x} lapsed without keepalive")
                    self._mark_done()
                continue

            if not alive:
                logger.info(f"Lease {self.lease_id:x} expired")
                self._mark_done()
                return
            self._last_renewal = time.monotonic()

    async def close(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._mark_done()
        # Also drops candidate records left behind by a lapsed lease
        try:
            await self._coordinator._revoke(self.lease_id)
        except (RedisError, OSError) as e:
            logger.warning(f"Failed to revoke lease {self.lease_id:x}: {e}")


class _RedisWatchStream:
    """Polls a record and reports changes as watch responses."""

    def __init__(self, coordinator: RedisCoordinator, record_key: str, poll_interval: float):
        self._coordinator = coordinator
        self._key = record_key
        self._poll_interval = poll_interval
        self._last_value: str | None = None
        self._started = False
        self._closed = False

    def __aiter__(self) -> _RedisWatchStream:
        return self

    async def __anext__(self) -> WatchResponse:
        while not self._closed:
            if self._started:
                await asyncio.sleep(self._poll_interval)
            try:
                value = await self._coordinator._record_value(self._key)
            except (RedisError, OSError) as e:
                logger.warning(f"Watch on {self._key} lost its connection: {e}")
                self._closed = True
                return WatchResponse(canceled=True)

            first, self._started = not self._started, True
            if value is None:
                self._closed = True
                return WatchResponse(events=(WatchEvent(EventType.DELETE, self._key),))
            if not first and value != self._last_value:
                self._last_value = value
                return WatchResponse(events=(WatchEvent(EventType.PUT, self._key, value),))
            self._last_value = value

        raise StopAsyncIteration

    async def aclose(self) -> None:
        self._closed = True


class RedisCoordinator(CoordinationClient):
    """Coordination service on top of Redis.

    Args:
        client: Redis client (the shared client from get_redis() if None)
        poll_interval: Seconds between record checks in watch and campaign
    """

    def __init__(
        self,
        client: Redis | None = None,
        poll_interval: float | None = None,
    ):
        self._redis = client
        self._owns_client = client is None
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.watch_poll_interval
        )
        self._scripts: dict[str, Any] = {}

    async def _get_redis(self) -> Redis:
        """Get Redis client."""
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    async def _script(self, name: str, source: str) -> Any:
        if name not in self._scripts:
            client = await self._get_redis()
            self._scripts[name] = client.register_script(source)
        return self._scripts[name]

    async def create_session(self, ttl: int) -> Session:
        client = await self._get_redis()
        try:
            lease_id = int(await client.incr(LEASE_SEQ_KEY))
            await client.set(_lease_key(lease_id), "1", px=ttl * 1000)
        except RedisError as e:
            raise CoordinationError(f"failed to grant lease: {e}") from e

        session = RedisSession(self, lease_id, ttl)
        session.start()
        logger.debug(f"Granted lease {lease_id:x} with TTL {ttl}s")
        return session

    async def campaign(self, session: Session, key: str, value: str) -> LeaderRecord:
        own_key = candidate_key(key, session.lease_id)
        script = await self._script("campaign", _CAMPAIGN_LUA)
        try:
            revision = await script(
                keys=[
                    _lease_key(session.lease_id),
                    _lease_records_key(session.lease_id),
                    _election_key(key),
                    own_key,
                    REVISION_KEY,
                ],
                args=[value, session.ttl * 1000],
            )
        except RedisError as e:
            raise ElectionError(f"failed to register candidate at '{key}': {e}") from e
        if int(revision) < 0:
            # The lease lapsed before the keepalive noticed
            session._mark_done()
            raise ElectionError(f"lease {session.lease_id:x} is not alive")

        try:
            while True:
                if session.is_done:
                    raise ElectionError(f"lease {session.lease_id:x} expired during campaign")
                try:
                    current = await self.leader(key)
                except NoLeaderError:
                    raise ElectionError(f"candidate record {own_key} disappeared") from None
                if current.key == own_key:
                    return LeaderRecord(key=own_key, value=value, revision=int(revision))
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            await asyncio.shield(self._resign_quietly(session, key))
            raise

    async def leader(self, key: str) -> LeaderRecord:
        script = await self._script("leader", _LEADER_LUA)
        try:
            result = await script(keys=[_election_key(key)], args=[])
        except RedisError as e:
            raise ElectionError(f"failed to query leader of '{key}': {e}") from e
        if not result:
            raise NoLeaderError(key)
        record_key, value, revision = (_text(item) for item in result)
        return LeaderRecord(key=record_key, value=value, revision=int(float(revision)))

    async def resign(self, session: Session, key: str) -> None:
        script = await self._script("resign", _RESIGN_LUA)
        try:
            await script(
                keys=[
                    _election_key(key),
                    candidate_key(key, session.lease_id),
                    _lease_records_key(session.lease_id),
                ],
                args=[],
            )
        except RedisError as e:
            raise ElectionError(f"failed to resign from '{key}': {e}") from e

    def watch(self, record_key: str) -> _RedisWatchStream:
        return _RedisWatchStream(self, record_key, self.poll_interval)

    async def close(self) -> None:
        """Release the shared client; a client passed in stays open."""
        if self._owns_client and self._redis is not None:
            await close_redis()
        self._redis = None if self._owns_client else self._redis
        self._scripts.clear()

    async def _resign_quietly(self, session: Session, key: str) -> None:
        try:
            await self.resign(session, key)
        except ElectionError as e:
            logger.warning(f"Failed to withdraw candidate at '{key}': {e}")

    async def _keepalive(self, lease_id: int, ttl: int) -> bool:
        script = await self._script("keepalive", _KEEPALIVE_LUA)
        result = await script(
            keys=[_lease_key(lease_id), _lease_records_key(lease_id)],
            args=[ttl * 1000],
        )
        return bool(int(result))

    async def _revoke(self, lease_id: int) -> None:
        script = await self._script("revoke", _REVOKE_LUA)
        await script(keys=[_lease_key(lease_id), _lease_records_key(lease_id)], args=[])
        logger.debug(f"Revoked lease {lease_id:x}")

    async def _record_value(self, record_key: str) -> str | None:
        client = await self._get_redis()
        value = await client.hget(record_key, "value")
        return None if value is None else _text(value)
