"""Coordination service clients for owner election.

Example:
    from steward.coordination import create_coordinator

    client = create_coordinator("redis")
    session = await client.create_session(ttl=10)
"""

from steward.coordination.base import (
    CoordinationClient,
    Election,
    EventType,
    LeaderRecord,
    Session,
    WatchEvent,
    WatchResponse,
    candidate_key,
)
from steward.coordination.memory import InMemoryCoordinator
from steward.coordination.redis import RedisCoordinator
from steward.coordination.runtime import create_coordinator

__all__ = [
    "CoordinationClient",
    "Election",
    "EventType",
    "InMemoryCoordinator",
    "LeaderRecord",
    "RedisCoordinator",
    "Session",
    "WatchEvent",
    "WatchResponse",
    "candidate_key",
    "create_coordinator",
]
