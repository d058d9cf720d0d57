"""Role state published by the campaign loops.

Each duty has one flag. Only the campaign loop for that duty writes it;
any thread may read it at any time.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum


class DutyName(str, Enum):
    """The two independently elected responsibilities."""

    PRIMARY = "primary"
    BACKGROUND = "background"


@dataclass(frozen=True)
class Duty:
    """A duty and the election key it is campaigned on."""

    name: DutyName
    key: str


class RoleFlag:
    """Lock-guarded boolean; reads and writes are never torn."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = False

    def get(self) -> bool:
        with self._lock:
            return self._value

    def set(self, value: bool) -> bool:
        """Store ``value`` and return the previous value."""
        with self._lock:
            previous, self._value = self._value, bool(value)
            return previous


class RoleState:
    """One RoleFlag per duty."""

    def __init__(self) -> None:
        self._flags = {name: RoleFlag() for name in DutyName}

    def get(self, duty: DutyName) -> bool:
        return self._flags[DutyName(duty)].get()

    def set(self, duty: DutyName, value: bool) -> bool:
        return self._flags[DutyName(duty)].set(value)

    def snapshot(self) -> dict[str, bool]:
        return {name.value: flag.get() for name, flag in self._flags.items()}
