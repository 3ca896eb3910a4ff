"""Structured logging configuration for bug-report.

Records may carry the context fields listed in :data:`CONTEXT_FIELDS`
(usually attached with :meth:`BugReportLogger.with_context`). Both
formatters render them; other extra attributes are ignored.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import UTC, datetime
from typing import Any

CONTEXT_FIELDS = ("query_name", "repo", "config_file")


def _component(record: logging.LogRecord) -> str:
    # "bugreport.query.normalizer" -> "normalizer"
    return record.name.rpartition(".")[2]


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=UTC)


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


class StructuredFormatter(logging.Formatter):
    """Single-line formatter for people reading the log.

    Example output::

        2017-03-01 12:30:00.123 [WARNING ] [reports     ] [query_name=Bugs] Label does not exist: x
    """

    def format(self, record: logging.LogRecord) -> str:
        header = (
            f"{_record_time(record):%Y-%m-%d %H:%M:%S}.{int(record.msecs):03d} "
            f"[{record.levelname:8}] [{_component(record):12}]"
        )
        context = _context(record)
        if context:
            header += " [" + " ".join(f"{key}={value}" for key, value in context.items()) + "]"

        line = f"{header} {record.getMessage()}"
        if record.exc_info:
            line += " " + self.formatException(record.exc_info)
        return line


class JSONFormatter(logging.Formatter):
    """Formatter that writes one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "component": _component(record),
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class ContextAdapter(logging.LoggerAdapter[logging.Logger]):
    """Logger adapter that attaches fixed context to every record.

    Extra fields passed to a single log call win over the adapter's context.
    The caller's ``extra`` mapping is never modified.

    Usage:
        ctx_logger = get_logger(__name__).with_context(query_name="Untriaged")
        ctx_logger.warning("Label does not exist: %s", name)
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


class BugReportLogger(logging.Logger):
    """Logger class installed for the whole process by this module."""

    def with_context(self, **context: Any) -> ContextAdapter:
        """Return an adapter adding ``context`` to every record it logs."""
        return ContextAdapter(self, context)


logging.setLoggerClass(BugReportLogger)


def get_logger(name: str) -> BugReportLogger:
    """Return the named logger, typed as :class:`BugReportLogger`."""
    return logging.getLogger(name)  # type: ignore[return-value]


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    replace_handlers: bool = True,
) -> None:
    """Send log records to stderr in the chosen format.

    Args:
        level: Log level name. Unknown names fall back to INFO.
        json_format: Write JSON lines instead of the structured text format.
        replace_handlers: Remove the root logger's existing handlers first.
    """
    numeric_level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if json_format else StructuredFormatter())

    root_logger = logging.getLogger()
    if replace_handlers:
        for existing in list(root_logger.handlers):
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    logging.getLogger("bugreport").setLevel(numeric_level)
