"""Output sink for the reconciliation engine.

Components never print; they receive a ``Reporter``. The default is
``NullReporter`` (silent), the CLI passes a ``ConsoleReporter`` backed by
rich. Messages use rich markup, so dynamic values go through ``escape``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from rich.console import Console
from rich.markup import escape
from rich.text import Text

BANNER_MIN_WIDTH = 70

__all__ = ["Reporter", "NullReporter", "ConsoleReporter", "escape"]


class Reporter(ABC):
    """Base reporter. Subclasses implement ``emit``."""

    @abstractmethod
    def emit(self, level: str, message: str) -> None:
        ...

    def info(self, message: str) -> None:
        self.emit("info", message)

    def warn(self, message: str) -> None:
        self.emit("warn", message)

    def error(self, message: str) -> None:
        self.emit("error", message)

    def dim(self, message: str) -> None:
        self.emit("dim", message)

    def banner(self, lines: str | list[str], level: str = "info") -> None:
        """Print *lines* framed by rows of ``*`` at least 70 columns wide."""
        if isinstance(lines, str):
            lines = [lines]
        width = max([BANNER_MIN_WIDTH] + [len(Text.from_markup(line).plain) for line in lines])
        self.emit("info", "*" * width)
        for line in lines:
            self.emit(level, line)
        self.emit("info", "*" * width)


class NullReporter(Reporter):
    """Discards everything. Used when output is disabled."""

    def emit(self, level: str, message: str) -> None:
        return None


class ConsoleReporter(Reporter):
    """Writes to the terminal through rich; errors and warnings go to stderr."""

    _STYLES = {
        "info": None,
        "warn": "yellow",
        "error": "red",
        "dim": "dim",
    }

    def __init__(self, console: Console | None = None, err_console: Console | None = None):
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def emit(self, level: str, message: str) -> None:
        target = self.err_console if level in ("warn", "error") else self.console
        style = self._STYLES.get(level)
        target.print(message, style=style)
