"""Structured JSON logging for the ledger view engine.

Every engine module logs through a child of the ``ledgerview`` logger.
Records are rendered as one JSON object per line on stderr; the runner
keeps stdout for its JSON run summary.

Correlation fields are passed through ``extra``:
- session_id: the LedgerSession that emitted the record
- transaction_id: the transaction an intent or outcome refers to
- batch_id: the clearing batch a submission or resolution belongs to
- extra_data: free-form payload, emitted under ``data``
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

ROOT_LOGGER_NAME = "ledgerview"

LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_CORRELATION_FIELDS: tuple[str, ...] = ("session_id", "transaction_id", "batch_id")


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string.

        The timestamp is the record's creation time in UTC, so entries
        emitted in one scheduler pass keep their relative order.

        Args:
            record: The log record to format.

        Returns:
            JSON string with the standard fields, any correlation fields
            present on the record, and exception details.
        """
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "component": ROOT_LOGGER_NAME,
        }

        for name in _CORRELATION_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if hasattr(record, "extra_data"):
            entry["data"] = record.extra_data

        if record.exc_info and record.exc_info[1]:
            exc_type, exc, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc),
            }

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", stream: TextIO | None = None) -> logging.Logger:
    """Configure the ``ledgerview`` logger hierarchy.

    Safe to call more than once: previous handlers are replaced, so the
    runner can re-apply the level read from the config file.

    Args:
        level: Level name from LOG_LEVELS; unknown names fall back to INFO.
        stream: Handler stream. Defaults to stderr.

    Returns:
        The configured ``ledgerview`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    name = level.upper()
    logger.setLevel(getattr(logging, name) if name in LOG_LEVELS else logging.INFO)

    logger.handlers.clear()
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the ``ledgerview.<name>`` child logger."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
