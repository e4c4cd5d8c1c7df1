"""Root logger setup: JSON lines for production, readable lines for development."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

from ironarchive.errors import LoggingSetupError

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}

CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS and not k.startswith("_")}


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": _timestamp(record),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(CONSOLE_FORMAT)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        return _timestamp(record)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extra_fields(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        return line


class IronArchiveHandler(logging.StreamHandler):
    """Stream handler installed by ``setup_logging``."""


def setup_logging(level: str = "info", fmt: str = "json", stream: IO[str] | None = None) -> logging.Logger:
    """Install the IronArchive handler on the root logger.

    Unknown levels fall back to ``info``; any format other than ``json`` gives
    console output. Calling it again replaces the previous IronArchive handler
    and leaves foreign handlers alone.
    """
    try:
        formatter = JSONFormatter() if fmt.lower() == "json" else ConsoleFormatter()
        handler = IronArchiveHandler(stream if stream is not None else sys.stderr)
        handler.setFormatter(formatter)
        resolved = _LEVELS.get(level.lower(), logging.INFO)
    except (AttributeError, TypeError, ValueError) as e:
        raise LoggingSetupError(f"failed to build log handler: {e}") from e

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, IronArchiveHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(resolved)
    return root
