"""Levelled logging used by the LRPC layer.

Messages carry the level name and the process ID and go to a replaceable
:class:`logging.Logger`, which writes to stderr unless another is set.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum

__all__ = [
    "LogLevel",
    "UnknownLogLevelError",
    "set_log_level",
    "get_log_level",
    "set_logger",
    "get_logger",
    "shutdown",
    "trace",
    "tracef",
    "debug",
    "debugf",
    "info",
    "infof",
    "warn",
    "warnf",
    "error",
    "errorf",
]


class LogLevel(IntEnum):
    """Log levels from most verbose to none at all."""

    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4
    DISABLED = 5


class UnknownLogLevelError(ValueError):
    """Raised for a log level name that is not known."""

    def __init__(self, message: str = "Unknown log level") -> None:
        super().__init__(message)


_PY_LEVELS = {
    LogLevel.TRACE: 5,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

_PID_TAG = f"[{os.getpid()}] "


class _UtcFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):  # noqa: N802 - logging API
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return stamp.strftime("%Y/%m/%d %H:%M:%S.%f")


def _stderr_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_UtcFormatter("%(asctime)s %(filename)s:%(lineno)d: %(message)s"))
    return handler


def _default_logger() -> logging.Logger:
    logger = logging.Logger("cfylrpc")
    logger.addHandler(_stderr_handler())
    return logger


@dataclass
class _State:
    level: LogLevel
    logger: logging.Logger


_state = _State(level=LogLevel.INFO, logger=_default_logger())
_lock = threading.Lock()


def set_log_level(level: str) -> None:
    """Set the current level by name: TRACE, DEBUG, INFO, WARN, ERROR or DISABLED."""
    try:
        _state.level = LogLevel[level]
    except KeyError:
        raise UnknownLogLevelError() from None


def get_log_level() -> str:
    """Return the name of the current level."""
    return _state.level.name


def set_logger(logger: logging.Logger) -> None:
    """Send LRPC log messages to another logger."""
    _state.logger = logger


def get_logger() -> logging.Logger:
    """Return the logger that LRPC log messages go to."""
    return _state.logger


def shutdown() -> None:
    """Point the current logger back at stderr."""
    with _lock:
        logger = _state.logger
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.addHandler(_stderr_handler())


def _sprint(args: tuple) -> str:
    """Join operands, putting a space between two that are both non-strings."""
    parts: list[str] = []
    previous_is_str = True
    for arg in args:
        is_str = isinstance(arg, str)
        if parts and not is_str and not previous_is_str:
            parts.append(" ")
        parts.append(str(arg))
        previous_is_str = is_str
    return "".join(parts)


def _sprintf(fmt: str, args: tuple) -> str:
    return fmt % args if args else fmt


def _emit(level: LogLevel, content: str) -> None:
    if _state.level > level:
        return
    with _lock:
        # stacklevel 3 points the record at the caller of the public function
        _state.logger.log(_PY_LEVELS[level], f"{level.name} {_PID_TAG}{content}", stacklevel=3)


def trace(*args) -> None:
    """Log at TRACE level."""
    _emit(LogLevel.TRACE, _sprint(args))


def tracef(fmt: str, *args) -> None:
    """Log a %-formatted message at TRACE level."""
    _emit(LogLevel.TRACE, _sprintf(fmt, args))


def debug(*args) -> None:
    """Log at DEBUG level."""
    _emit(LogLevel.DEBUG, _sprint(args))


def debugf(fmt: str, *args) -> None:
    """Log a %-formatted message at DEBUG level."""
    _emit(LogLevel.DEBUG, _sprintf(fmt, args))


def info(*args) -> None:
    """Log at INFO level."""
    _emit(LogLevel.INFO, _sprint(args))


def infof(fmt: str, *args) -> None:
    """Log a %-formatted message at INFO level."""
    _emit(LogLevel.INFO, _sprintf(fmt, args))


def warn(*args) -> None:
    """Log at WARN level."""
    _emit(LogLevel.WARN, _sprint(args))


def warnf(fmt: str, *args) -> None:
    """Log a %-formatted message at WARN level."""
    _emit(LogLevel.WARN, _sprintf(fmt, args))


def error(*args) -> None:
    """Log at ERROR level."""
    _emit(LogLevel.ERROR, _sprint(args))


def errorf(fmt: str, *args) -> None:
    """Log a %-formatted message at ERROR level."""
    _emit(LogLevel.ERROR, _sprintf(fmt, args))