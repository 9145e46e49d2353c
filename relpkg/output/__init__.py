"""Console output for release runs (rich-backed, with a recording mock for tests)."""

from .console import (
    ConsoleProtocol,
    MockConsole,
    RichConsole,
    Style,
)

__all__ = [
    "ConsoleProtocol",
    "MockConsole",
    "RichConsole",
    "Style",
]
