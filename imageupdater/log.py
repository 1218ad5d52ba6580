"""Structured logging with separate streams for normal and error output.

Trace, debug, info and warning messages go to standard output; error and
fatal messages go to standard error. Messages are rendered as ``key=value``
records, or with coloured level prefixes when writing to a terminal.
Format strings use printf-style placeholders (``%s``, ``%d``).
"""

from __future__ import annotations

import enum
import json
import os
import sys
import threading
import time
from datetime import datetime
from typing import Any, TextIO


class LogLevel(enum.IntEnum):
    """Log severities, ordered from most to least verbose."""

    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4
    FATAL = 5

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    LogLevel.TRACE: "trace",
    LogLevel.DEBUG: "debug",
    LogLevel.INFO: "info",
    LogLevel.WARN: "warning",
    LogLevel.ERROR: "error",
    LogLevel.FATAL: "fatal",
}

_LEVEL_NAMES = {
    "trace": LogLevel.TRACE,
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "warn": LogLevel.WARN,
    "error": LogLevel.ERROR,
}

_COLORS = {
    LogLevel.TRACE: 37,
    LogLevel.DEBUG: 37,
    LogLevel.INFO: 36,
    LogLevel.WARN: 33,
    LogLevel.ERROR: 31,
    LogLevel.FATAL: 31,
}

_SAFE_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-._/@^+"
)


def _colors_disabled() -> bool:
    return os.environ.get("ENABLE_LOG_COLORS", "").lower() == "false"


class _Logger:
    """Process-wide logger state."""

    def __init__(self) -> None:
        self.level = LogLevel.DEBUG
        self.disable_colors = _colors_disabled()
        self.started = time.monotonic()
        self.lock = threading.Lock()

    def enabled(self, level: LogLevel) -> bool:
        return level >= self.level

    def emit(self, stream: TextIO, level: LogLevel, message: str, fields: dict[str, Any]) -> None:
        message = message.removesuffix("\n")
        use_colors = not self.disable_colors and _isatty(stream)
        if use_colors:
            line = self._colored(level, message, fields)
        else:
            line = self._plain(level, message, fields)
        with self.lock:
            stream.write(line + "\n")
            stream.flush()

    def _plain(self, level: LogLevel, message: str, fields: dict[str, Any]) -> str:
        stamp = datetime.now().astimezone().isoformat(timespec="seconds")
        parts = [
            f"time={_quote(stamp)}",
            f"level={level.label}",
            f"msg={_quote(message)}",
        ]
        parts.extend(f"{key}={_quote(str(fields[key]))}" for key in sorted(fields))
        return " ".join(parts)

    def _colored(self, level: LogLevel, message: str, fields: dict[str, Any]) -> str:
        color = _COLORS[level]
        elapsed = int(time.monotonic() - self.started)
        text = level.label.upper()[:4]
        line = f"\x1b[{color}m{text}\x1b[0m[{elapsed:04d}] {message:<44s} "
        line += "".join(
            f" \x1b[{color}m{key}\x1b[0m={fields[key]}" for key in sorted(fields)
        )
        return line.rstrip()


def _isatty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


def _quote(text: str) -> str:
    if all(ch in _SAFE_CHARS for ch in text):
        return text
    return json.dumps(text, ensure_ascii=False)


def _format(fmt: str, args: tuple[Any, ...]) -> str:
    return fmt % args if args else fmt


_logger = _Logger()


class LogContext:
    """A set of structured fields attached to every message it logs."""

    def __init__(self, normal_out: TextIO | None = None, error_out: TextIO | None = None) -> None:
        self.fields: dict[str, Any] = {}
        self.normal_out = normal_out
        self.error_out = error_out
        self._lock = threading.Lock()

    def add_field(self, key: str, value: Any) -> LogContext:
        """Add a structured field and return this context."""
        with self._lock:
            self.fields[key] = value
        return self

    def _log(self, level: LogLevel, fmt: str, args: tuple[Any, ...]) -> None:
        if not _logger.enabled(level):
            return
        if level >= LogLevel.ERROR:
            stream = self.error_out or sys.stderr
        else:
            stream = self.normal_out or sys.stdout
        with self._lock:
            fields = dict(self.fields)
        _logger.emit(stream, level, _format(fmt, args), fields)

    def trace(self, fmt: str, *args: Any) -> None:
        self._log(LogLevel.TRACE, fmt, args)

    def debug(self, fmt: str, *args: Any) -> None:
        self._log(LogLevel.DEBUG, fmt, args)

    def info(self, fmt: str, *args: Any) -> None:
        self._log(LogLevel.INFO, fmt, args)

    def warn(self, fmt: str, *args: Any) -> None:
        self._log(LogLevel.WARN, fmt, args)

    def error(self, fmt: str, *args: Any) -> None:
        self._log(LogLevel.ERROR, fmt, args)

    def fatal(self, fmt: str, *args: Any) -> None:
        """Log a fatal message and terminate with exit status 1."""
        self._log(LogLevel.FATAL, fmt, args)
        raise SystemExit(1)


def new_context() -> LogContext:
    """Return a log context with default settings."""
    return LogContext()


def with_context() -> LogContext:
    """Alias for new_context."""
    return new_context()


def set_log_level(level: str) -> None:
    """Set the global log level by name; raise ValueError for unknown names."""
    try:
        _logger.level = _LEVEL_NAMES[level.lower()]
    except KeyError:
        raise ValueError(f"invalid loglevel: {level}") from None


def get_log_level() -> LogLevel:
    """Return the current global log level."""
    return _logger.level


def trace(fmt: str, *args: Any) -> None:
    new_context().trace(fmt, *args)


def debug(fmt: str, *args: Any) -> None:
    new_context().debug(fmt, *args)


def info(fmt: str, *args: Any) -> None:
    new_context().info(fmt, *args)


def warn(fmt: str, *args: Any) -> None:
    new_context().warn(fmt, *args)


def error(fmt: str, *args: Any) -> None:
    new_context().error(fmt, *args)


def fatal(fmt: str, *args: Any) -> None:
    new_context().fatal(fmt, *args)