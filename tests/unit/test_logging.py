"""Tests for logging module."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from io import StringIO

import pytest

from bugreport.logging import (
    BugReportLogger,
    ContextAdapter,
    JSONFormatter,
    StructuredFormatter,
    get_logger,
    setup_logging,
)


def _record(name: str = "bugreport.reports", level: int = logging.INFO, msg: str = "Test message") -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.fixture
def restore_root_logger() -> Iterator[logging.Logger]:
    """Put back the root handlers and level replaced by setup_logging."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_basic_format(self) -> None:
        result = StructuredFormatter().format(_record())

        assert "[INFO    ]" in result
        assert "[reports" in result  # component extracted from logger name
        assert result.endswith("Test message")

    def test_format_with_context(self) -> None:
        record = _record(msg="Label does not exist: area-Foo")
        record.query_name = "Untriaged"
        record.repo = "dotnet/corefx"

        result = StructuredFormatter().format(record)

        assert "[query_name=Untriaged repo=dotnet/corefx]" in result
        assert "Label does not exist: area-Foo" in result

    def test_unknown_extra_fields_are_ignored(self) -> None:
        record = _record()
        record.issue_key = "TEST-123"

        assert "issue_key" not in StructuredFormatter().format(record)

    def test_timestamp_has_milliseconds(self) -> None:
        record = _record()
        record.created = 1488371400.25
        record.msecs = 250.0

        assert StructuredFormatter().format(record).startswith("2017-03-01 12:30:00.250 [INFO    ]")

    def test_format_handles_simple_name(self) -> None:
        result = StructuredFormatter().format(_record(name="mylogger", level=logging.ERROR))
        assert "[mylogger" in result

    def test_format_includes_exception(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "bugreport.app", logging.ERROR, "test.py", 1, "Failed", (), sys.exc_info()
            )

        result = StructuredFormatter().format(record)

        assert "ValueError: boom" in result


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_format(self) -> None:
        data = json.loads(JSONFormatter().format(_record(name="bugreport.query.normalizer")))

        assert data["level"] == "INFO"
        assert data["component"] == "normalizer"
        assert data["message"] == "Test message"
        assert "timestamp" in data

    def test_format_with_context(self) -> None:
        record = _record()
        record.query_name = "Open bugs"
        record.config_file = "reports.yaml"

        data = json.loads(JSONFormatter().format(record))

        assert data["query_name"] == "Open bugs"
        assert data["config_file"] == "reports.yaml"
        assert "repo" not in data


class TestContextAdapter:
    """Tests for ContextAdapter."""

    def test_adds_context_to_logs(self) -> None:
        adapter = ContextAdapter(logging.getLogger("test.context"), {"query_name": "Bugs"})

        msg, kwargs = adapter.process("Test message", {})

        assert msg == "Test message"
        assert kwargs["extra"]["query_name"] == "Bugs"

    def test_merges_with_existing_extra(self) -> None:
        adapter = ContextAdapter(logging.getLogger("test.context2"), {"query_name": "Bugs"})

        msg, kwargs = adapter.process("Test", {"extra": {"repo": "dotnet/corefx"}})

        assert kwargs["extra"] == {"query_name": "Bugs", "repo": "dotnet/corefx"}

    def test_call_extra_wins_and_is_not_modified(self) -> None:
        adapter = ContextAdapter(logging.getLogger("test.context3"), {"repo": "dotnet/corefx"})
        call_extra = {"repo": "dotnet/corefxlab"}

        _, kwargs = adapter.process("Test", {"extra": call_extra})

        assert kwargs["extra"] == {"repo": "dotnet/corefxlab"}
        assert call_extra == {"repo": "dotnet/corefxlab"}
        assert kwargs["extra"] is not call_extra


class TestBugReportLogger:
    """Tests for BugReportLogger."""

    def test_get_logger_returns_bugreport_logger(self) -> None:
        assert isinstance(get_logger("bugreport.test_module"), BugReportLogger)

    def test_with_context_returns_adapter(self) -> None:
        ctx_logger = get_logger("bugreport.test").with_context(query_name="Bugs")
        assert isinstance(ctx_logger, ContextAdapter)

    def test_context_reaches_records(self, caplog: pytest.LogCaptureFixture) -> None:
        ctx_logger = get_logger("bugreport.test").with_context(repo="dotnet/corefx")

        with caplog.at_level(logging.INFO, logger="bugreport"):
            ctx_logger.info("Fetched %d issues", 3)

        (record,) = caplog.records
        assert record.getMessage() == "Fetched 3 issues"
        assert record.repo == "dotnet/corefx"  # type: ignore[attr-defined]


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_sets_log_level(self, restore_root_logger: logging.Logger) -> None:
        setup_logging(level="DEBUG")

        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("bugreport").level == logging.DEBUG

    def test_json_format_adds_json_formatter(self, restore_root_logger: logging.Logger) -> None:
        setup_logging(level="INFO", json_format=True)

        (handler,) = restore_root_logger.handlers
        assert isinstance(handler.formatter, JSONFormatter)

    def test_structured_format_by_default(self, restore_root_logger: logging.Logger) -> None:
        setup_logging(level="INFO")

        (handler,) = restore_root_logger.handlers
        assert isinstance(handler.formatter, StructuredFormatter)

    def test_handles_invalid_level_gracefully(self, restore_root_logger: logging.Logger) -> None:
        setup_logging(level="INVALID")

        assert restore_root_logger.level == logging.INFO

    def test_replace_handlers_false_preserves_existing(
        self, restore_root_logger: logging.Logger
    ) -> None:
        setup_logging(level="INFO")
        existing_handler = logging.StreamHandler(StringIO())
        restore_root_logger.addHandler(existing_handler)

        setup_logging(level="DEBUG", replace_handlers=False)

        assert existing_handler in restore_root_logger.handlers
        assert len(restore_root_logger.handlers) == 3
