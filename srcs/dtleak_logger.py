"""
Logging utilities for dtleak.

Levelled messages are written to stderr through a rich Console so that the
report files stay free of progress chatter.
"""

import time
from enum import IntEnum

from rich.console import Console


class LogLevel(IntEnum):
    """Hierarchical logging levels."""
    SILENT = 0
    ERROR = 3
    WARNING = 6
    INFO = 10
    DEBUG = 30


_LEVEL_STYLES = {
    LogLevel.ERROR: ("ERROR", "bold red"),
    LogLevel.WARNING: ("WARNING", "yellow"),
    LogLevel.INFO: ("INFO", "green"),
    LogLevel.DEBUG: ("DEBUG", "dim"),
}

_console = Console(stderr=True, highlight=False)
_log_level = LogLevel.WARNING


def parse_log_level(name: str) -> LogLevel:
    """
    Convert a level name ("info", "DEBUG", ...) to a LogLevel.

    Raises:
        ValueError: If the name is not a known level.
    """
    try:
        return LogLevel[name.strip().upper()]
    except KeyError:
        known = ", ".join(level.name.lower() for level in LogLevel)
        raise ValueError(f"unknown log level '{name}' (expected one of: {known})")


def set_log_level(level: LogLevel) -> None:
    global _log_level
    _log_level = level


def set_console(console: Console) -> Console:
    """Replace the output console and return the previous one."""
    global _console
    previous = _console
    _console = console
    return previous


def log(log_level: LogLevel, message: str) -> None:
    """
    Log a message if the configured level lets it through.

    Args:
        log_level: The level of the message to log.
        message:   The message to log.
    """
    if log_level == LogLevel.SILENT or _log_level < log_level:
        return
    label, style = _LEVEL_STYLES[log_level]
    timestamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime())
    _console.print(f"{timestamp} [{label}] {message}", style=style, markup=False, soft_wrap=True)


def log_error(message: str) -> None:
    log(LogLevel.ERROR, message)


def log_warning(message: str) -> None:
    log(LogLevel.WARNING, message)


def log_info(message: str) -> None:
    log(LogLevel.INFO, message)


def log_debug(message: str) -> None:
    log(LogLevel.DEBUG, message)
