"""Tests for the session manager."""

import asyncio

import pytest

from steward.config import settings
from steward.coordination.memory import InMemoryCoordinator
from steward.errors import CoordinationError, SessionError
from steward.owner.session import STARTUP_SESSION_RETRIES, SessionManager


class TestSessionManager:
    """Tests for SessionManager."""

    @pytest.fixture
    def sessions(self, coordinator: InMemoryCoordinator) -> SessionManager:
        return SessionManager(coordinator, ttl=10, retry_interval=0.01)

    def test_current_requires_acquire(self, sessions: SessionManager) -> None:
        assert sessions.has_session is False
        with pytest.raises(RuntimeError):
            sessions.current

    def test_defaults_come_from_settings(
        self, coordinator: InMemoryCoordinator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "session_retry_interval", 0.5)
        monkeypatch.setattr(settings, "session_ttl", 7)

        manager = SessionManager(coordinator)

        assert manager.retry_interval == 0.5
        assert manager.ttl == 7

    async def test_acquire(self, sessions: SessionManager) -> None:
        session = await sessions.acquire()

        assert sessions.current is session
        assert session.ttl == 10
        assert not session.is_done

    async def test_acquire_retries_transient_failures(
        self, coordinator: InMemoryCoordinator, sessions: SessionManager
    ) -> None:
        coordinator.fail_next("create_session", CoordinationError("unavailable"), times=2)

        session = await sessions.acquire(retry_budget=3)

        assert not session.is_done
        assert coordinator.calls.count(("create_session", "")) == 3

    async def test_acquire_gives_up_after_budget(
        self, coordinator: InMemoryCoordinator, sessions: SessionManager
    ) -> None:
        coordinator.fail_next("create_session", CoordinationError("unavailable"), times=10)

        with pytest.raises(SessionError) as exc_info:
            await sessions.acquire(retry_budget=STARTUP_SESSION_RETRIES)

        assert exc_info.value.attempts == STARTUP_SESSION_RETRIES
        assert isinstance(exc_info.value.__cause__, CoordinationError)
        assert coordinator.calls.count(("create_session", "")) == STARTUP_SESSION_RETRIES

    async def test_context_finished_is_not_retried(
        self, coordinator: InMemoryCoordinator, sessions: SessionManager
    ) -> None:
        coordinator.fail_next("create_session", TimeoutError(), times=5)

        with pytest.raises(TimeoutError):
            await sessions.acquire(retry_budget=5)

        assert coordinator.calls.count(("create_session", "")) == 1

    async def test_renew_replaces_dead_session(
        self, coordinator: InMemoryCoordinator, sessions: SessionManager
    ) -> None:
        first = await sessions.acquire()
        coordinator.expire_session(first.lease_id)

        second = await sessions.renew(first)

        assert second is not first
        assert sessions.current is second
        assert not second.is_done

    async def test_concurrent_renewals_share_one_session(
        self, coordinator: InMemoryCoordinator, sessions: SessionManager
    ) -> None:
        first = await sessions.acquire()
        coordinator.expire_session(first.lease_id)

        a, b = await asyncio.gather(sessions.renew(first), sessions.renew(first))

        assert a is b
        assert coordinator.calls.count(("create_session", "")) == 2

    async def test_renew_keeps_retrying(
        self, coordinator: InMemoryCoordinator, sessions: SessionManager
    ) -> None:
        first = await sessions.acquire()
        coordinator.expire_session(first.lease_id)
        coordinator.fail_next("create_session", CoordinationError("unavailable"), times=10)

        second = await sessions.renew(first)

        assert not second.is_done
        assert coordinator.calls.count(("create_session", "")) == 12

    async def test_close_revokes_lease(
        self, coordinator: InMemoryCoordinator, sessions: SessionManager
    ) -> None:
        session = await sessions.acquire()

        await sessions.close()

        assert session.is_done
        assert session.lease_id not in coordinator.sessions
        assert sessions.has_session is False
