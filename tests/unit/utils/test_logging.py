"""Unit tests for logging setup."""

from __future__ import annotations

import io
import json
import logging

from rich.console import Console

from shipyard.utils.logging import (
    ConsoleFormatter,
    JSONFormatter,
    LogContext,
    get_logger,
    setup_logging,
)


def _record(message: str = "hello", level: int = logging.INFO) -> logging.LogRecord:
    return logging.getLogRecordFactory()("shipyard.test", level, __file__, 1, message, None, None)


class TestFormatters:
    def test_json_formatter_includes_bound_fields(self) -> None:
        with LogContext(resource_id="repo", operation="create"):
            record = _record("created repo")

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "shipyard.test"
        assert data["message"] == "created repo"
        assert data["resource_id"] == "repo"
        assert data["operation"] == "create"
        assert data["timestamp"].endswith("Z")

    def test_json_formatter_without_context(self) -> None:
        data = json.loads(JSONFormatter().format(_record()))

        assert "resource_id" not in data

    def test_console_formatter_prefixes_resource(self) -> None:
        with LogContext(resource_id="web-sg"):
            record = _record("creating")

        assert ConsoleFormatter().format(record) == "[web-sg] creating"
        assert ConsoleFormatter().format(_record("plain")) == "plain"


class TestLogContext:
    def test_fields_are_attached_inside_context_only(self) -> None:
        with LogContext(resource_id="vpc", resource_type="Network"):
            inside = _record()
        outside = _record()

        assert inside.resource_id == "vpc"
        assert inside.resource_type == "Network"
        assert not hasattr(outside, "resource_id")

    def test_nested_contexts_override_and_restore(self) -> None:
        with LogContext(resource_id="vpc", resource_type="Network"):
            with LogContext(resource_id="sg"):
                inner = _record()
            after = _record()

        assert inner.resource_id == "sg"
        assert inner.resource_type == "Network"
        assert after.resource_id == "vpc"


class TestSetupLogging:
    def test_writes_json_lines_file(self, tmp_path) -> None:
        log_file = setup_logging("warning", log_dir=tmp_path, console=Console(file=io.StringIO()))

        get_logger("shipyard.test").debug("debug goes to the file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert log_file.parent == tmp_path
        lines = log_file.read_text().splitlines()
        assert json.loads(lines[-1])["message"] == "debug goes to the file"

    def test_console_output_goes_to_given_console(self, tmp_path) -> None:
        output = io.StringIO()
        setup_logging("info", log_dir=tmp_path, console=Console(file=output, width=200))

        with LogContext(resource_id="my-ecs-cluster"):
            get_logger("shipyard.test").info("created")
        get_logger("shipyard.test").debug("file only")

        text = output.getvalue()
        assert "[my-ecs-cluster] created" in text
        assert "INFO" in text
        assert "file only" not in text

    def test_console_level_and_quiet_sdk_loggers(self, tmp_path) -> None:
        setup_logging("error", log_dir=tmp_path, console=Console(file=io.StringIO()))

        console_handlers = [
            handler for handler in logging.getLogger().handlers
            if isinstance(handler.formatter, ConsoleFormatter)
        ]
        assert [handler.level for handler in console_handlers] == [logging.ERROR]
        assert logging.getLogger("botocore").level == logging.WARNING
