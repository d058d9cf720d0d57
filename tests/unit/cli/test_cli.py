"""Tests for the steward CLI."""

import pytest
from typer.testing import CliRunner

from steward.cli import app, run_cmd
from steward.coordination.memory import InMemoryCoordinator
from steward.errors import CoordinationError

runner = CliRunner()


class TestLeaderCommand:
    """Tests for `steward leader`."""

    def test_no_owner(self) -> None:
        result = runner.invoke(app, ["leader", "--backend", "memory"])

        assert result.exit_code == 1
        assert "No primary owner" in result.output

    def test_background_duty(self) -> None:
        result = runner.invoke(app, ["leader", "--duty", "background", "--backend", "memory"])

        assert result.exit_code == 1
        assert "No background owner" in result.output

    def test_unknown_duty(self) -> None:
        result = runner.invoke(app, ["leader", "--duty", "nightly", "--backend", "memory"])

        assert result.exit_code != 0


class TestRunCommand:
    """Tests for `steward run`."""

    @pytest.fixture(autouse=True)
    def _quiet_logging(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(run_cmd, "configure_logging", lambda **kwargs: None)

    def test_session_failure_exits_with_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        coordinator = InMemoryCoordinator()
        coordinator.fail_next("create_session", CoordinationError("unreachable"), times=3)
        monkeypatch.setattr(run_cmd, "create_coordinator", lambda backend: coordinator)

        result = runner.invoke(app, ["run", "--identity", "p1", "--backend", "memory"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert [op for op, _ in coordinator.calls] == ["create_session"] * 3


def test_help() -> None:
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    assert "run" in result.output
    assert "leader" in result.output
