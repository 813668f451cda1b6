"""Output multiplexer for concurrently running commands.

Every shell command gets its own :class:`OutputBuffer`. The subprocess runner
pushes raw stdout/stderr chunks into it; the buffer coalesces them and, on
flush, writes them to the real streams with the command's context prefix
(``build/0/test/1  ``) in front of each new line.

Rules:
- A chunk that continues an unterminated line is never re-prefixed.
- Switching between stdout and stderr resets the continuation state: an open
  line on the previous stream is terminated and the first line after the
  switch always gets a prefix.
- Timer flushes only emit up to the last complete line; the trailing partial
  line is held back so concurrent buffers never interleave half lines. The
  final flush emits everything and terminates a dangling line.
- Bytes are decoded incrementally per stream, so multi-byte UTF-8 sequences
  split across chunks survive.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import sys
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from runtree.utils.formatting import strip_ansi, style

__all__ = [
    "OutputBuffer",
    "StreamKind",
    "StreamSink",
    "default_sinks",
    "emit_line",
]


class StreamKind(str, Enum):
    """Stream an output chunk belongs to."""

    OUT = "out"
    ERR = "err"


@dataclass
class StreamSink:
    """Destination stream for one stream kind, with an optional dim tint."""

    stream: TextIO
    color: str | None = None


def default_sinks() -> dict[StreamKind, StreamSink]:
    """Sinks bound to the current ``sys.stdout`` / ``sys.stderr``."""
    return {
        StreamKind.OUT: StreamSink(sys.stdout),
        StreamKind.ERR: StreamSink(sys.stderr, color="magenta"),
    }


def emit_line(text: str, *, err: bool = False) -> None:
    """Write one already-formatted line straight to stdout/stderr."""
    stream = sys.stderr if err else sys.stdout
    stream.write(text + "\n")
    stream.flush()


class OutputBuffer:
    """Line-aware buffer that prefixes and flushes one command's output.

    Args:
        prefix: Line prefix, or a callable producing it at flush time.
        sinks: Destination per stream kind. Kinds without a sink are dropped.
        colors: Whether sink tints are applied.

    Example:
        >>> buf = OutputBuffer("build/0  ", default_sinks(), colors=False)
        >>> buf.write(StreamKind.OUT, b"compiling")
        >>> buf.write(StreamKind.OUT, b"... done\\n")
        >>> buf.flush()  # "build/0  compiling... done"
    """

    def __init__(
        self,
        prefix: str | Callable[[], str],
        sinks: Mapping[StreamKind, StreamSink] | None = None,
        *,
        colors: bool = True,
    ) -> None:
        self._prefix = prefix
        self._sinks = dict(default_sinks() if sinks is None else sinks)
        self._colors = colors
        self._queue: list[tuple[StreamKind, str]] = []
        self._decoders = {
            kind: codecs.getincrementaldecoder("utf-8")(errors="replace") for kind in StreamKind
        }
        self._last_kind: StreamKind | None = None
        self._at_line_start = True

    @property
    def prefix(self) -> str:
        return self._prefix() if callable(self._prefix) else self._prefix

    def has_data(self) -> bool:
        return bool(self._queue)

    def write(self, kind: StreamKind, data: bytes) -> None:
        """Queue a raw chunk from a subprocess pipe."""
        if not data:
            return
        self._enqueue(kind, self._decoders[kind].decode(data))

    def write_text(self, kind: StreamKind, text: str) -> None:
        """Queue already-formatted text (ignored if it has no visible characters)."""
        if strip_ansi(text):
            self._enqueue(kind, text)

    def _enqueue(self, kind: StreamKind, text: str) -> None:
        text = text.replace("\r", "")
        if not text:
            return
        if self._queue and self._queue[-1][0] == kind:
            self._queue[-1] = (kind, self._queue[-1][1] + text)
        else:
            self._queue.append((kind, text))

    # =========================================================================
    # Flushing
    # =========================================================================

    def flush(self, *, final: bool = False) -> None:
        """Write queued output to the sinks.

        Args:
            final: Emit everything, including a trailing partial line, and
                terminate it with a newline.
        """
        if final:
            for kind, decoder in self._decoders.items():
                self._enqueue(kind, decoder.decode(b"", final=True))

        for kind, text in self._take(final):
            self._emit(kind, text)

        if final:
            self._terminate_open_line()

        for sink in self._sinks.values():
            sink.stream.flush()

    def _terminate_open_line(self) -> None:
        if not self._at_line_start and self._last_kind is not None:
            sink = self._sinks.get(self._last_kind)
            if sink is not None:
                sink.stream.write("\n")
        self._at_line_start = True

    def _take(self, final: bool) -> list[tuple[StreamKind, str]]:
        if final:
            items, self._queue = self._queue, []
            return items

        for idx in range(len(self._queue) - 1, -1, -1):
            kind, text = self._queue[idx]
            cut = text.rfind("\n")
            if cut < 0:
                continue
            items = self._queue[:idx] + [(kind, text[: cut + 1])]
            rest = text[cut + 1 :]
            self._queue = ([(kind, rest)] if rest else []) + self._queue[idx + 1 :]
            return items
        return []

    def _emit(self, kind: StreamKind, text: str) -> None:
        sink = self._sinks.get(kind)
        if sink is None:
            return

        if kind != self._last_kind:
            self._terminate_open_line()
            self._last_kind = kind

        prefix = self.prefix
        lines = text.split("\n")
        last = len(lines) - 1
        rendered: list[str] = []
        for i, line in enumerate(lines):
            if sink.color:
                line = style(line, "dim", sink.color, enabled=self._colors)
            if (i == last and not strip_ansi(line)) or (i == 0 and not self._at_line_start):
                rendered.append(line)
            else:
                rendered.append(prefix + line)

        sink.stream.write("\n".join(rendered))
        self._at_line_start = strip_ansi(text).endswith("\n")

    async def _flush_periodically(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if self.has_data():
                self.flush()

    @contextlib.asynccontextmanager
    async def auto_flush(self, interval: float) -> AsyncIterator[OutputBuffer]:
        """Flush every ``interval`` seconds while the block runs, then flush fully."""
        task = asyncio.create_task(self._flush_periodically(interval))
        try:
            yield self
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            self.flush(final=True)
