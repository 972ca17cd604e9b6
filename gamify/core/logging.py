"""Structured JSON logging for Gamify.

Every SDK module logs to a child of the ``gamify`` logger. The host
application's root logging configuration is left alone: ``gamify`` does not
propagate, and owns exactly one JSON handler.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

ROOT_LOGGER = "gamify"

# Delivery context fields, emitted right after the base fields when present
STRUCTURED_FIELDS: tuple[str, ...] = ("event_id", "event_type", "batch_size", "attempts", "result")

# Attributes every LogRecord carries; anything else came in via extra=
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record: base fields, delivery context, then extras.

    Values json cannot encode are written with str(). Exceptions are
    rendered under ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(
            (name, getattr(record, name)) for name in STRUCTURED_FIELDS if hasattr(record, name)
        )
        data.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in data
        )
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


def _json_handler(logger: logging.Logger) -> logging.Handler:
    """Return the logger's JSON handler, installing one if it has none."""
    for handler in logger.handlers:
        if isinstance(handler.formatter, JSONFormatter):
            return handler
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    return handler


def configure_logger(debug: bool = False) -> logging.Logger:
    """Configure and return the root Gamify logger.

    Safe to call once per client; handlers are never stacked.

    Args:
        debug: Log at DEBUG when True, otherwise only WARNING and above.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    _json_handler(logger)
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    logger.propagate = False
    return logger
