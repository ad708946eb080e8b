"""Levelled logging for the indexer, built on the standard logging module."""

from __future__ import annotations

import enum
import logging
import sys
from typing import IO, Optional

_LOGGER_NAME = "waypoint"
_FORMAT = "%(asctime)s %(filename)s:%(lineno)d: %(tag)s%(message)s"
_DATE_FORMAT = "%Y/%m/%d %H:%M:%S"


class LogLevel(enum.IntEnum):
    """Verbosity levels accepted on the command line."""

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR


_TAGS = {
    logging.DEBUG: "[DEBUG]",
    logging.INFO: "[INFO]",
    logging.WARNING: "[WARN]",
    logging.ERROR: "[ERROR]",
    logging.CRITICAL: "[FATAL]",
}


class _TaggedFormatter(logging.Formatter):
    """Prefixes each message with a bracketed level tag unless marked plain."""

    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, "plain", False):
            record.tag = ""
        else:
            record.tag = _TAGS.get(record.levelno, f"[{record.levelname}]") + " "
        return super().format(record)


def get_logger() -> logging.Logger:
    """Return the package's root logger."""
    return logging.getLogger(_LOGGER_NAME)


def parse_level(name: str) -> LogLevel:
    """Map a level name (case-insensitive) to a LogLevel, defaulting to INFO."""
    try:
        return LogLevel[name.upper()]
    except KeyError:
        get_logger().warning("Unknown log level '%s'. Defaulting to INFO.", name)
        return LogLevel.INFO


def configure(level_name: str, stream: Optional[IO[str]] = None) -> logging.Logger:
    """Send package logging to ``stream`` (stderr if None) at the named level."""
    level = parse_level(level_name)
    logger = get_logger()
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(_TaggedFormatter(_FORMAT, _DATE_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    logger.critical("Logger initialized with level: %s", level_name, extra={"plain": True})
    return logger