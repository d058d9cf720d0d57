"""Tests for structured logging."""

import json
import logging
import sys

from steward.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    duty_var,
    owner_id_var,
)


def _record(message: str = "Became owner", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="steward.owner.campaign",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_fields(self) -> None:
        data = json.loads(JsonFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "steward.owner.campaign"
        assert data["message"] == "Became owner"
        assert "owner_id" not in data

    def test_includes_campaign_context(self) -> None:
        with LogContext(owner_id="p1", duty="background"):
            data = json.loads(JsonFormatter().format(_record()))

        assert data["owner_id"] == "p1"
        assert data["duty"] == "background"

    def test_extra_fields(self) -> None:
        data = json.loads(JsonFormatter().format(_record(lease="1a2b", session=object())))

        assert data["lease"] == "1a2b"
        assert isinstance(data["session"], str)

    def test_exception_info(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert data["exception"]["type"] == "RuntimeError"
        assert data["exception"]["message"] == "boom"


class TestConsoleFormatter:
    """Tests for ConsoleFormatter."""

    def test_appends_context(self) -> None:
        formatter = ConsoleFormatter(use_colors=False)

        with LogContext(owner_id="p1", duty="primary"):
            line = formatter.format(_record())

        assert "| INFO " in line
        assert line.endswith("Became owner | owner=p1 duty=primary")

    def test_without_context(self) -> None:
        line = ConsoleFormatter(use_colors=False).format(_record())

        assert line.endswith("| steward.owner.campaign | Became owner")


class TestLogContext:
    """Tests for LogContext."""

    def test_resets_on_exit(self) -> None:
        with LogContext(owner_id="p1"):
            assert owner_id_var.get() == "p1"
            assert duty_var.get() == ""

        assert owner_id_var.get() == ""

    def test_nesting(self) -> None:
        with LogContext(owner_id="p1", duty="primary"):
            with LogContext(duty="background"):
                assert owner_id_var.get() == "p1"
                assert duty_var.get() == "background"
            assert duty_var.get() == "primary"
