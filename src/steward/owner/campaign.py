"""Per-duty campaign loop.

One CampaignLoop runs per duty. Each iteration:
1. Makes sure the shared session is alive (recreating it if it died)
2. Campaigns on the duty key with this process's identity
3. Confirms the win with a leader query
4. Publishes ownership and watches the winning record until it is lost

Every failure short of cancellation sends the loop back to step 1.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from steward.coordination.base import CoordinationClient, Election
from steward.errors import SessionError, is_context_finished
from steward.observability.logging import LogContext
from steward.observability.metrics import (
    record_campaign,
    record_campaign_error,
    record_leadership_lost,
)
from steward.owner.session import SessionManager
from steward.owner.state import Duty
from steward.owner.watcher import watch_owner

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    """Campaign loop state machine."""

    IDLE = "idle"
    CAMPAIGNING = "campaigning"
    CONFIRMING = "confirming"
    LEADING = "leading"
    REACQUIRING = "reacquiring"
    STOPPED = "stopped"


class CampaignLoop:
    """Campaigns for one duty until cancelled.

    Args:
        client: Coordination service client
        sessions: Session manager shared with the other duty's loop
        duty: Duty campaigned for
        identity: Campaign value of this process
        set_role: Setter for this duty's role flag
    """

    def __init__(
        self,
        client: CoordinationClient,
        sessions: SessionManager,
        duty: Duty,
        identity: str,
        set_role: Callable[[bool], None],
    ):
        self._client = client
        self._sessions = sessions
        self.duty = duty
        self.identity = identity
        self._set_role = set_role
        self.state = LoopState.IDLE
        self.attempts = 0

    async def run(self) -> None:
        """Run the loop until the task is cancelled or the session is unrecoverable."""
        with LogContext(owner_id=self.identity, duty=self.duty.name.value):
            try:
                await self._loop()
            except asyncio.CancelledError:
                logger.info(f"Break {self.duty.key} campaign loop")
                raise
            except SessionError as e:
                logger.warning(f"Break {self.duty.key} campaign loop, err {e}")
            finally:
                self._set_role(False)
                self.state = LoopState.STOPPED

    async def _loop(self) -> None:
        key = self.duty.key
        duty = self.duty.name.value

        while True:
            # Yield so a campaign that fails without suspending cannot starve the loop
            await asyncio.sleep(0)
            self.state = LoopState.IDLE

            session = self._sessions.current
            if session.is_done:
                self.state = LoopState.REACQUIRING
                session = await self._sessions.renew(session)

            self.state = LoopState.CAMPAIGNING
            self.attempts += 1
            record_campaign(duty)
            election = Election(self._client, session, key)
            try:
                await election.campaign(self.identity)
            except Exception as e:
                if is_context_finished(e):
                    logger.warning(f"Break {key} campaign loop, err {e}")
                    return
                logger.info(f"{key} owner manager {self.identity} failed to campaign, err {e}")
                record_campaign_error(duty, "campaign")
                continue

            self.state = LoopState.CONFIRMING
            try:
                leader = await election.leader()
            except Exception as e:
                if is_context_finished(e):
                    logger.warning(f"Break {key} campaign loop, err {e}")
                    return
                # NoLeaderError lands here too; winning the campaign is not enough
                logger.info(f"Failed to get leader of {key}, err {e}")
                record_campaign_error(duty, "leader")
                continue

            logger.info(f"{key} owner manager is {self.identity}, owner is {leader.value}")
            if leader.value != self.identity:
                logger.warning(f"Owner manager {self.identity} isn't the owner of {key}")
                record_campaign_error(duty, "mismatch")
                self._set_role(False)
                continue

            self.state = LoopState.LEADING
            self._set_role(True)
            try:
                reason = await watch_owner(self._client, session, leader.key)
            finally:
                self._set_role(False)

            record_leadership_lost(duty, reason.value)
            logger.info(f"Owner manager {self.identity} lost {key} ownership ({reason.value})")
