"""
Structured JSON logging for background indexing.

Embedding work happens off the request path, so queueing, retries and
abandonment are only visible through logs. Records carry entry context
(``entry_id``, ``retry_count``) as top-level JSON fields so they can be
filtered without parsing the message text.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class StructuredJsonFormatter(logging.Formatter):
    """
    Render each record as a single-line JSON object.

    Fields: ``timestamp`` (record creation time, UTC ISO-8601), ``level``,
    ``logger``, ``message``, ``exception`` when present, then any extra
    context fields. Values that are not JSON-serializable are stringified.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            payload[key] = value

        return json.dumps(payload)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Send a logger's output through the JSON formatter.

    Existing handlers on the logger are replaced, so calling this twice does
    not duplicate lines.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: root logger)
        stream: Destination (default: stdout)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def get_journal_logger(name: str) -> logging.Logger:
    """Logger under the ``decision_journal_rag.`` namespace, e.g. 'indexing'."""
    return logging.getLogger(f"decision_journal_rag.{name}")


class EntryLoggerAdapter(logging.LoggerAdapter):
    """
    Attach journal entry context to every message.

    Per-call ``extra`` fields win over the adapter's own, so a call can
    override ``retry_count`` while keeping ``entry_id``.
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def entry_logger(logger: logging.Logger, entry_id: str, **context: Any) -> EntryLoggerAdapter:
    """Wrap a logger so its records carry ``entry_id`` and any extra context."""
    return EntryLoggerAdapter(logger, {"entry_id": entry_id, **context})
