"""Leveled terminal logging for lbr-build operations.

Messages are rendered with rich. Inside ``scoped(label)`` every message is
prefixed with the operation label; the scope is a context variable, so
concurrently running operations tag their own lines.

Example:
    >>> set_level("info")
    >>> with scoped("build"):
    ...     step(1, 3, "detect changes")
    [build] [1/3] detect changes
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from enum import IntEnum

from rich.console import Console
from rich.text import Text


class LogLevel(IntEnum):
    TRACE = 10
    DEBUG = 20
    INFO = 30
    SUCCESS = 35
    WARNING = 40
    ERROR = 50


LEVEL_NAMES = ("trace", "debug", "info", "success", "warning", "error")

_ALIASES = {"warn": LogLevel.WARNING}
_STYLES = {
    LogLevel.TRACE: "dim",
    LogLevel.DEBUG: "cyan",
    LogLevel.SUCCESS: "green",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "bold red",
}
_DEFAULT_LEVEL = LogLevel.INFO
_configured_level = None
_no_color = None
_scope: ContextVar[str | None] = ContextVar("lbrbuild_log_scope", default=None)


def parse_level(value: str | None) -> LogLevel | None:
    """Return the level named by ``value``, or ``None`` when unknown."""
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in _ALIASES:
        return _ALIASES[normalized]
    if normalized in LEVEL_NAMES:
        return LogLevel[normalized.upper()]
    return None


def configured_level() -> LogLevel:
    global _configured_level
    if _configured_level is None:
        _configured_level = parse_level(os.environ.get("LBRBUILD_LOG_LEVEL")) or _DEFAULT_LEVEL
    return _configured_level


def set_level(value: str | None) -> None:
    """Set the active log level; unknown names select the default."""
    global _configured_level
    _configured_level = parse_level(value) or _DEFAULT_LEVEL


def set_no_color(value: bool) -> None:
    """Force colour output off (``True``) or back to environment detection."""
    global _no_color
    _no_color = True if value else None


def color_disabled() -> bool:
    if _no_color is not None:
        return _no_color
    return bool(os.environ.get("NO_COLOR") or os.environ.get("LBRBUILD_NO_COLOR"))


@contextmanager
def scoped(label: str) -> Iterator[None]:
    """Prefix messages emitted inside the block with ``[label]``."""
    token = _scope.set(label)
    try:
        yield
    finally:
        _scope.reset(token)


def emit(level: LogLevel, message: str, *, style: str | None = None) -> None:
    if level < configured_level():
        return
    text = Text()
    label = _scope.get()
    if label:
        text.append(f"[{label}] ", style="dim")
    text.append(message, style=style or _STYLES.get(level, ""))
    console = Console(
        file=sys.stderr if level >= LogLevel.WARNING else sys.stdout,
        soft_wrap=True,
        highlight=False,
        no_color=color_disabled(),
    )
    console.print(text)


def step(index: int, total: int, message: str) -> None:
    """Report progress through a numbered pipeline at info level."""
    emit(LogLevel.INFO, f"[{index}/{total}] {message}")


def trace(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.TRACE, message, style=style)


def debug(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.DEBUG, message, style=style)


def info(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.INFO, message, style=style)


def success(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.SUCCESS, message, style=style)


def warning(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.WARNING, message, style=style)


def error(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.ERROR, message, style=style)
