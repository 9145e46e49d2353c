"""Console output abstraction.

Services never print directly: they receive a ``ConsoleProtocol`` and report
progress through it. ``RichConsole`` renders to the terminal (and CI logs),
``MockConsole`` records everything for assertions in tests.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

__all__ = [
    "Style",
    "ConsoleProtocol",
    "RichConsole",
    "MockConsole",
    "OutputRecord",
]


class Style(Enum):
    """Text styles for console output."""

    DEFAULT = auto()
    SUCCESS = auto()
    ERROR = auto()
    WARNING = auto()
    INFO = auto()
    DIM = auto()  # echoed commands, secondary details
    BOLD = auto()
    HEADER = auto()

    def __str__(self) -> str:
        return self.name.lower()


class ConsoleProtocol(Protocol):
    """Where pipeline progress goes.

    Services receive a console instead of printing or logging directly, so the
    CLI renders through Rich and tests record every line with ``MockConsole``.
    """

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        """Print a message with optional styling.

        Args:
            message: The text to print (commands are echoed this way, dimmed)
            style: The style to apply
        """
        ...

    def success(self, message: str) -> None:
        """Print a success message (shorthand for print with SUCCESS style)."""
        ...

    def error(self, message: str) -> None:
        """Print an error message (shorthand for print with ERROR style)."""
        ...

    def warning(self, message: str) -> None:
        """Print a warning (failed deletes, discarded sync intents)."""
        ...

    def info(self, message: str) -> None:
        """Print an info message (shorthand for print with INFO style)."""
        ...

    def header(self, message: str) -> None:
        """Print a pipeline stage header."""
        ...

    def table(self, title: str, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        """Render a small table (job outcomes, sync results).

        Args:
            title: Caption shown above the table
            columns: Column headers
            rows: One sequence of cell strings per row, in column order
        """
        ...

    def newline(self) -> None:
        """Print an empty line."""
        ...


class RichConsole:
    """Production console backed by rich."""

    def __init__(self) -> None:
        # Import Rich lazily to avoid import-time dependency
        from rich.console import Console

        self._console = Console()
        self._style_map = {
            Style.DEFAULT: "",
            Style.SUCCESS: "green",
            Style.ERROR: "red bold",
            Style.WARNING: "yellow",
            Style.INFO: "cyan",
            Style.DIM: "dim",
            Style.BOLD: "bold",
            Style.HEADER: "blue bold",
        }

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        rich_style = self._style_map.get(style, "")
        # Asset names and commands contain brackets; never interpret them as markup.
        if rich_style:
            self._console.print(message, style=rich_style, markup=False, highlight=False)
        else:
            self._console.print(message, markup=False, highlight=False)

    def success(self, message: str) -> None:
        self._console.print(f"[green]OK[/green] {_escape(message)}")

    def error(self, message: str) -> None:
        self._console.print(f"[red bold]error:[/red bold] {_escape(message)}")

    def warning(self, message: str) -> None:
        self._console.print(f"[yellow]warning:[/yellow] {_escape(message)}")

    def info(self, message: str) -> None:
        self._console.print(f"[cyan]info:[/cyan] {_escape(message)}")

    def header(self, message: str) -> None:
        self._console.print(f"\n[blue bold]{_escape(message)}[/blue bold]")

    def table(self, title: str, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        from rich.table import Table

        tbl = Table(title=title, title_justify="left")
        for col in columns:
            tbl.add_column(col)
        for row in rows:
            tbl.add_row(*(_escape(cell) for cell in row))
        self._console.print(tbl)

    def newline(self) -> None:
        self._console.print()


def _escape(text: str) -> str:
    from rich.markup import escape

    return escape(text)


@dataclass
class OutputRecord:
    """A single captured line in MockConsole."""

    message: str
    style: Style


def _empty_outputs() -> list[OutputRecord]:
    return []


def _empty_tables() -> list[tuple[str, tuple[str, ...], tuple[tuple[str, ...], ...]]]:
    return []


@dataclass
class MockConsole:
    """Console that captures output for tests."""

    outputs: list[OutputRecord] = field(default_factory=_empty_outputs)
    tables: list[tuple[str, tuple[str, ...], tuple[tuple[str, ...], ...]]] = field(
        default_factory=_empty_tables
    )

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self.outputs.append(OutputRecord(message, style))

    def success(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"OK {message}", Style.SUCCESS))

    def error(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"error: {message}", Style.ERROR))

    def warning(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"warning: {message}", Style.WARNING))

    def info(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"info: {message}", Style.INFO))

    def header(self, message: str) -> None:
        self.outputs.append(OutputRecord(message, Style.HEADER))

    def table(self, title: str, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        self.tables.append((title, tuple(columns), tuple(tuple(r) for r in rows)))

    def newline(self) -> None:
        self.outputs.append(OutputRecord("", Style.DEFAULT))

    @property
    def messages(self) -> list[str]:
        return [o.message for o in self.outputs]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    def has_error(self) -> bool:
        return any(o.style == Style.ERROR for o in self.outputs)

    def has_warning(self) -> bool:
        return any(o.style == Style.WARNING for o in self.outputs)

    def find(self, substring: str) -> list[OutputRecord]:
        return [o for o in self.outputs if substring in o.message]

    def count(self, style: Style) -> int:
        return sum(1 for o in self.outputs if o.style == style)
