"""Root logger setup for lms-backend.

LOG_JSON=false gives one readable line per record for a terminal or
``docker logs``.  LOG_JSON=true gives JSON Lines for the aggregator, with
request context (set by RequestContextMiddleware) and the purchase/progress
fields passed through ``extra=`` promoted to top-level keys.
"""

from __future__ import annotations

import json
import logging
import sys

_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# Keys a record may carry via extra= or the request-id filter
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "user_id",
    "course_id",
    "payment_id",
    "event_type",
)

_QUIET_LOGGERS = (
    "uvicorn",
    "uvicorn.access",
    "uvicorn.error",
    "httpcore",
    "httpx",
    "sqlalchemy.engine",
)


class _ContainerFormatter(logging.Formatter):
    """``<time> LEVEL logger  message``, plus ``[file:line]`` from WARNING up."""

    _PLAIN = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOCATED = _PLAIN + "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(fmt=self._PLAIN, datefmt=_DATEFMT)
        self._plain_style = self._style
        self._located_style = logging.PercentStyle(self._LOCATED)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = super().formatTime(record, datefmt)
        # millis go between seconds and the +0000 offset
        return f"{stamp[:-5]}.{int(record.msecs):03d}{stamp[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        located = record.levelno >= logging.WARNING
        self._style = self._located_style if located else self._plain_style
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(datefmt=_DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value)
            for key in CONTEXT_FIELDS
            if (value := getattr(record, key, None)) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Send all records to stdout with the chosen formatter.

    Unknown level names fall back to INFO.  Chatty libraries never log
    below WARNING, even when the app runs at DEBUG.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
