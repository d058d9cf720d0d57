"""Owner election for the primary and background duties.

Example:
    from steward.owner import OwnerManager, owner_only

    manager = OwnerManager(client, identity="p1")
    await manager.start_campaigns()

    @owner_only(manager)
    async def run_schema_changes():
        ...
"""

from steward.owner.campaign import CampaignLoop, LoopState
from steward.owner.manager import OwnerManager, owner_only
from steward.owner.retry import UNLIMITED_RETRIES, retry_async
from steward.owner.session import (
    STARTUP_SESSION_RETRIES,
    UNLIMITED_SESSION_RETRIES,
    SessionManager,
)
from steward.owner.state import Duty, DutyName, RoleFlag, RoleState
from steward.owner.watcher import LossReason, watch_owner

__all__ = [
    "CampaignLoop",
    "Duty",
    "DutyName",
    "LoopState",
    "LossReason",
    "OwnerManager",
    "RoleFlag",
    "RoleState",
    "STARTUP_SESSION_RETRIES",
    "SessionManager",
    "UNLIMITED_RETRIES",
    "UNLIMITED_SESSION_RETRIES",
    "owner_only",
    "retry_async",
    "watch_owner",
]
