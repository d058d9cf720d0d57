"""Owner election for a fleet of peer processes.

The OwnerManager elects this process, independently, as holder of two
duties: the primary owner role and the background owner role. Each duty
has its own campaign loop; both loops share one leased session.

Both duties depend on the same session, so a session expiry drops both
roles at once and both loops campaign again. Splitting them onto separate
sessions would decouple their availability at the cost of a second lease.

Example:
    manager = OwnerManager(create_coordinator(), identity="p1")
    await manager.start_campaigns()

    while running:
        if manager.is_owner():
            await run_schema_changes()
        await asyncio.sleep(1)

    await manager.stop()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

from steward.config import settings
from steward.coordination.base import CoordinationClient
from steward.errors import SessionError
from steward.observability.metrics import set_ownership
from steward.owner.campaign import CampaignLoop
from steward.owner.session import SessionManager
from steward.owner.state import Duty, DutyName, RoleState

logger = logging.getLogger(__name__)


class OwnerManager:
    """Campaigns for the primary and background owner roles.

    Args:
        client: Coordination service client
        identity: Campaign value; must be unique across the fleet
        owner_key: Election key of the primary duty
        background_owner_key: Election key of the background duty
        session_ttl: Session TTL in seconds
        startup_retries: Session attempts before start_campaigns gives up
        retry_interval: Seconds between session attempts
    """

    def __init__(
        self,
        client: CoordinationClient,
        identity: str | None = None,
        owner_key: str | None = None,
        background_owner_key: str | None = None,
        session_ttl: int | None = None,
        startup_retries: int | None = None,
        retry_interval: float | None = None,
    ):
        self._client = client
        self._identity = identity or settings.instance_id
        self.startup_retries = (
            startup_retries if startup_retries is not None else settings.startup_session_retries
        )
        self.duties = (
            Duty(DutyName.PRIMARY, owner_key or settings.owner_key),
            Duty(DutyName.BACKGROUND, background_owner_key or settings.background_owner_key),
        )

        self._roles = RoleState()
        self._sessions = SessionManager(client, ttl=session_ttl, retry_interval=retry_interval)
        self._loops: dict[DutyName, CampaignLoop] = {}
        self._tasks: dict[DutyName, asyncio.Task[None]] = {}
        self._on_done: Callable[[str], None] | None = None
        self._started = False
        self._cancelled = False
        self._closed: asyncio.Event | None = None
        self._release_task: asyncio.Task[None] | None = None
        self._startup_task: asyncio.Future[Any] | None = None

        # Ownership waiters
        self._waiters: dict[DutyName, list[asyncio.Future[None]]] = {
            name: [] for name in DutyName
        }

    # -------------------------------------------------------------------------
    # Identity and role state
    # -------------------------------------------------------------------------

    @property
    def id(self) -> str:
        """The identity this process campaigns with."""
        return self._identity

    def identity(self) -> str:
        return self._identity

    def is_owner(self) -> bool:
        """Check if this process holds the primary owner role."""
        return self._roles.get(DutyName.PRIMARY)

    def set_owner(self, is_owner: bool) -> None:
        self._set_role(DutyName.PRIMARY, is_owner)

    def is_background_owner(self) -> bool:
        """Check if this process holds the background owner role."""
        return self._roles.get(DutyName.BACKGROUND)

    def set_background_owner(self, is_owner: bool) -> None:
        self._set_role(DutyName.BACKGROUND, is_owner)

    def holds(self, duty: DutyName | str) -> bool:
        """Check if this process holds ``duty``."""
        return self._roles.get(DutyName(duty))

    def _set_role(self, duty: DutyName, value: bool) -> None:
        previous = self._roles.set(duty, value)
        if previous == bool(value):
            return

        set_ownership(duty.value, bool(value))
        if value:
            logger.info(f"{self._identity} became {duty.value} owner")
            for future in self._waiters[duty]:
                future.get_loop().call_soon_threadsafe(_resolve, future)
            self._waiters[duty].clear()
        else:
            logger.info(f"{self._identity} is no longer {duty.value} owner")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start_campaigns(
        self,
        on_done: Callable[[str], None] | None = None,
        timeout: float | None = None,
    ) -> None:
        """Create the session and start one campaign loop per duty.

        If cancel() is called while the session is being created, creation
        stops, the session is released and no loop is started.

        Args:
            on_done: Called with the duty name once each loop has exited
            timeout: Deadline in seconds for creating the initial session

        Raises:
            SessionError: If the session could not be created within the
                startup retry budget or before ``timeout``.
        """
        if self._started:
            raise RuntimeError("Campaigns already started")
        self._started = True
        self._closed = asyncio.Event()
        self._on_done = on_done

        started = False
        try:
            self._startup_task = asyncio.ensure_future(
                asyncio.wait_for(self._sessions.acquire(self.startup_retries), timeout)
            )
            try:
                await self._startup_task
            except asyncio.TimeoutError as e:
                raise SessionError("timed out creating the initial session") from e
            finally:
                self._startup_task = None

            if self._cancelled:
                await self._release()
                return

            for duty, setter in zip(self.duties, (self.set_owner, self.set_background_owner)):
                loop = CampaignLoop(self._client, self._sessions, duty, self._identity, setter)
                task = asyncio.create_task(loop.run(), name=f"campaign-{duty.name.value}")
                task.add_done_callback(lambda t, name=duty.name: self._loop_finished(name, t))
                self._loops[duty.name] = loop
                self._tasks[duty.name] = task
            started = True
        except asyncio.CancelledError:
            # Raised for cancel() as well as for cancellation of the caller
            if not self._cancelled:
                raise
            logger.info(f"Owner campaigns for {self._identity} cancelled during startup")
            return
        finally:
            if not started:
                self._closed.set()

        logger.info(f"Started owner campaigns as {self._identity}")

    def cancel(self) -> None:
        """Stop both campaign loops and release the session.

        Also interrupts creation of the initial session. Does not wait; use
        wait_closed() for that.
        """
        self._cancelled = True
        if self._startup_task is not None and not self._startup_task.done():
            self._startup_task.cancel()
        for task in self._tasks.values():
            if not task.done():
                task.cancel()

    async def wait_closed(self) -> None:
        """Wait until both loops have exited and the session was released."""
        if self._closed is None:
            return
        await self._closed.wait()

    async def stop(self) -> None:
        """Cancel the campaigns and wait for shutdown."""
        self.cancel()
        await self.wait_closed()
        logger.info(f"Stopped owner campaigns for {self._identity}")

    def _loop_finished(self, duty: DutyName, task: asyncio.Task[None]) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"Campaign loop for {duty.value} crashed",
                exc_info=task.exception(),
            )

        if self._on_done is not None:
            try:
                self._on_done(duty.value)
            except Exception:
                logger.exception("Error in campaign completion callback")

        if all(t.done() for t in self._tasks.values()) and self._release_task is None:
            self._release_task = asyncio.create_task(self._release())

    async def _release(self) -> None:
        try:
            await self._sessions.close()
        except Exception as e:
            logger.warning(f"Failed to release session: {e}")
        finally:
            if self._closed is not None:
                self._closed.set()

    # -------------------------------------------------------------------------
    # Waiting and health
    # -------------------------------------------------------------------------

    async def wait_for_ownership(
        self,
        duty: DutyName | str = DutyName.PRIMARY,
        timeout: float | None = None,
    ) -> bool:
        """Wait until this process holds ``duty``.

        Args:
            duty: Duty to wait for
            timeout: Maximum time to wait in seconds (None = wait forever)

        Returns:
            True if the duty is held, False on timeout
        """
        duty = DutyName(duty)
        if self.holds(duty):
            return True

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters[duty].append(future)

        try:
            await asyncio.wait_for(future, timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            if future in self._waiters[duty]:
                self._waiters[duty].remove(future)

    def health_check(self) -> dict[str, Any]:
        """Return election health status."""
        session = self._sessions.current if self._sessions.has_session else None
        return {
            "identity": self._identity,
            "roles": self._roles.snapshot(),
            "session": {
                "lease_id": f"{session.lease_id:x}" if session else None,
                "alive": bool(session and not session.is_done),
            },
            "loops": {
                name.value: {
                    "key": loop.duty.key,
                    "state": loop.state.value,
                    "attempts": loop.attempts,
                }
                for name, loop in self._loops.items()
            },
        }


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


P = ParamSpec("P")
R = TypeVar("R")


def owner_only(
    manager: OwnerManager, duty: DutyName | str = DutyName.PRIMARY
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R | None]]]:
    """Decorator that makes a coroutine run only while ``duty`` is held.

    Example:
        @owner_only(manager, "background")
        async def purge_expired_jobs():
            # Only runs on the background owner
            ...
    """
    duty = DutyName(duty)

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R | None]]:
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R | None:
            if manager.holds(duty):
                return await func(*args, **kwargs)
            logger.debug(f"Skipping {func.__name__} - not {duty.value} owner")
            return None

        wrapper.__name__ = func.__name__
        wrapper.__doc__ = func.__doc__
        return wrapper

    return decorator
