"""Tests for the Redis coordination service with a mocked client."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from steward.coordination.base import LeaderRecord
from steward.coordination.redis import RedisCoordinator, RedisSession
from steward.errors import ElectionError, NoLeaderError

KEY = "/test/ddl/owner"


def _coordinator(script_result: object) -> RedisCoordinator:
    client = MagicMock()
    client.register_script.return_value = AsyncMock(return_value=script_result)
    return RedisCoordinator(client, poll_interval=0.01)


class TestRedisLeader:
    """Tests for leader queries."""

    async def test_decodes_byte_replies(self) -> None:
        coordinator = _coordinator([b"/test/ddl/owner/10", b"p1", b"3"])

        leader = await coordinator.leader(KEY)

        assert leader == LeaderRecord(key="/test/ddl/owner/10", value="p1", revision=3)

    async def test_string_replies(self) -> None:
        coordinator = _coordinator(["/test/ddl/owner/10", "p1", "3"])

        leader = await coordinator.leader(KEY)

        assert leader.key == "/test/ddl/owner/10"
        assert leader.revision == 3

    async def test_no_leader(self) -> None:
        coordinator = _coordinator(None)

        with pytest.raises(NoLeaderError):
            await coordinator.leader(KEY)


class TestRedisCampaign:
    """Tests for campaigns."""

    async def test_lapsed_lease_marks_session_done(self) -> None:
        coordinator = _coordinator(-1)
        session = RedisSession(coordinator, 0x10, 10)

        with pytest.raises(ElectionError):
            await coordinator.campaign(session, KEY, "p1")

        assert session.is_done
