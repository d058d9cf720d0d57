"""Tests for role state flags."""

import threading

from steward.owner.state import DutyName, RoleFlag, RoleState


class TestRoleFlag:
    """Tests for RoleFlag."""

    def test_defaults_to_false(self) -> None:
        assert RoleFlag().get() is False

    def test_set_returns_previous(self) -> None:
        flag = RoleFlag()

        assert flag.set(True) is False
        assert flag.set(True) is True
        assert flag.set(False) is True
        assert flag.get() is False

    def test_concurrent_writers_leave_a_boolean(self) -> None:
        """Readers never see anything but True or False."""
        flag = RoleFlag()
        seen: set[object] = set()

        def writer(value: bool) -> None:
            for _ in range(1000):
                flag.set(value)

        def reader() -> None:
            for _ in range(2000):
                seen.add(flag.get())

        threads = [
            threading.Thread(target=writer, args=(True,)),
            threading.Thread(target=writer, args=(False,)),
            threading.Thread(target=reader),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert seen <= {True, False}


class TestRoleState:
    """Tests for RoleState."""

    def test_duties_are_independent(self) -> None:
        state = RoleState()

        state.set(DutyName.PRIMARY, True)

        assert state.get(DutyName.PRIMARY) is True
        assert state.get(DutyName.BACKGROUND) is False

    def test_accepts_duty_names_as_strings(self) -> None:
        state = RoleState()

        state.set("background", True)

        assert state.get("background") is True

    def test_snapshot(self) -> None:
        state = RoleState()
        state.set(DutyName.BACKGROUND, True)

        assert state.snapshot() == {"primary": False, "background": True}
