"""Output sink implementations.

This module provides concrete implementations of the OutputSink protocol
for collecting and displaying process output.
"""

from typing import final

from rich.console import Console
from rich.style import Style
from rich.text import Text


@final
class BufferOutputSink:
    """Output sink that keeps everything it receives in memory."""

    __slots__ = ("_buffer",)

    def __init__(self) -> None:
        self._buffer = bytearray()

    async def write(self, data: bytes) -> None:
        self._buffer.extend(data)

    def getvalue(self) -> bytes:
        """Return all bytes written so far."""
        return bytes(self._buffer)

    def text(self, encoding: str = "utf-8") -> str:
        """Return all output decoded, replacing invalid sequences."""
        return self._buffer.decode(encoding, errors="replace")


@final
class ConsoleOutputSink:
    """Output sink that prints complete lines to a rich Console.

    Lines are printed as `[prefix] line` when a prefix is set. A trailing
    partial line is held back until its newline arrives or flush() is
    called.
    """

    __slots__ = ("_console", "_pending", "_prefix", "_prefix_style")

    def __init__(self, console: Console | None = None, *, prefix: str = "") -> None:
        """Initialize the output sink.

        Args:
            console: Rich Console instance for output. If None, creates a new one.
            prefix: Label printed before every line.
        """
        self._console = console or Console()
        self._prefix = prefix
        self._prefix_style = Style(color="blue", bold=True)
        self._pending = b""

    async def write(self, data: bytes) -> None:
        """Print every complete line in ``data``."""
        chunk = self._pending + data
        *lines, self._pending = chunk.split(b"\n")
        for raw_line in lines:
            self._print_line(raw_line)

    def flush(self) -> None:
        """Print any buffered partial line."""
        if self._pending:
            self._print_line(self._pending)
            self._pending = b""

    def _print_line(self, raw_line: bytes) -> None:
        line = raw_line.rstrip(b"\r").decode("utf-8", errors="replace")
        text = Text()
        if self._prefix:
            _ = text.append(f"[{self._prefix}]", style=self._prefix_style)
            _ = text.append(" ")
        _ = text.append(line)
        self._console.print(text, highlight=False)
