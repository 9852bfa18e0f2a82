"""Console I/O for the command line: plain output, fatal errors and prompts."""

from __future__ import annotations

import sys
from typing import NoReturn

import questionary

from .errors import BuildFailure


def _use_questionary() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def say(message: str) -> None:
    """Print a result line to stdout.

    Example:
        >>> say("2 sources will be built")
        2 sources will be built
    """
    print(message)


def die(message: str, code: int = 1, *, hint: str | None = None) -> NoReturn:
    """Print an error (and an optional recovery hint) to stderr and exit.

    Args:
        message: Error message to display.
        code: Exit code to use.
        hint: Suggested next step for the user.
    """
    print(f"error: {message}", file=sys.stderr)
    if hint:
        print(f"hint: {hint}", file=sys.stderr)
    sys.exit(code)


def fail(error: BuildFailure) -> NoReturn:
    """Exit with the message and recovery hint of an expected failure."""
    die(error.message, hint=error.recovery_hint)


def confirm(text: str, default: bool = False) -> bool:
    """Ask a yes/no question.

    Uses a questionary prompt on an interactive terminal and a plain
    ``input`` prompt otherwise.

    Returns:
        ``True`` when the user confirms.
    """
    if _use_questionary():
        response = questionary.confirm(text, default=default).ask()
        return bool(response)
    suffix = "[Y/n]" if default else "[y/N]"
    response = input(f"{text} {suffix}: ").strip().lower()
    if not response:
        return default
    return response in {"y", "yes"}
