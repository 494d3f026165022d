"""User-facing console feedback for CLI operations.

Usage::

    from wirecheck.core.progress import status, spinner

    status("Re-mapped acme/api", style="success")  # ✓ Re-mapped acme/api

    with spinner("Analysing pr-42"):
        run()  # console logging suppressed during this block
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console

_console = Console(stderr=True)

_STYLES = {
    "success": "[green]✓[/green] ",
    "error": "[red]✗[/red] ",
    "warning": "[yellow]![/yellow] ",
    "info": "  ",
    "none": "",
}

_suppress_console_logs = threading.local()


def is_console_suppressed() -> bool:
    return getattr(_suppress_console_logs, "active", False)


@contextmanager
def suppress_console_logs() -> Iterator[None]:
    """Pause console log output while a live display is active."""
    _suppress_console_logs.active = True
    try:
        yield
    finally:
        _suppress_console_logs.active = False


class ConsoleSuppressingFilter(logging.Filter):
    """Blocks console handlers while suppression is active. File handlers are unaffected."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: ARG002
        return not is_console_suppressed()


def _is_tty() -> bool:
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


def get_console() -> Console:
    """Shared Rich console (stderr)."""
    return _console


def status(message: str, *, style: str = "info", indent: int = 0) -> None:
    prefix = _STYLES.get(style, "")
    _console.print(f"{' ' * indent}{prefix}{message}", highlight=False)


@contextmanager
def spinner(message: str) -> Iterator[None]:
    """Spinner on a TTY, a single status line otherwise."""
    if not _is_tty():
        status(message)
        yield
        return
    with suppress_console_logs(), _console.status(message):
        yield
