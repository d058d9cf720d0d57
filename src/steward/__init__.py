"""Steward: owner election for a fleet of peer processes.

Elects, per duty, the single process allowed to act as the primary owner
or as the background owner, using a coordination service that provides
leased sessions, elections and watches.
"""

from steward.errors import (
    CoordinationError,
    ElectionError,
    NoLeaderError,
    SessionError,
    StewardError,
)
from steward.owner import DutyName, OwnerManager, owner_only

__version__ = "0.1.0"

__all__ = [
    "CoordinationError",
    "DutyName",
    "ElectionError",
    "NoLeaderError",
    "OwnerManager",
    "SessionError",
    "StewardError",
    "owner_only",
]
