"""
Frame decoder: raw byte chunks -> ordered event lines.

Chunks arrive with no alignment guarantee. A read may end inside a
multi-byte character or in the middle of a line, so both the text decoder
and the line buffer carry state from one chunk to the next.
"""

from __future__ import annotations

import codecs
from collections.abc import AsyncGenerator, AsyncIterable

from .models import EventLine

DEFAULT_EVENT_PREFIX = "data:"
LINE_TERMINATOR = "\n"


class FrameDecoder:
    """Incremental SSE line decoder for a single response body."""

    def __init__(
        self,
        event_prefix: str = DEFAULT_EVENT_PREFIX,
        encoding: str = "utf-8",
    ):
        self.event_prefix = event_prefix
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._finished = False

    @property
    def pending(self) -> str:
        """Text held back until its line terminator arrives."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[EventLine]:
        """Decode one chunk and return every event line it completes."""
        if self._finished:
            raise RuntimeError("FrameDecoder.feed() called after finish()")
        if not chunk:
            return []

        self._buffer += self._decoder.decode(chunk)
        if LINE_TERMINATOR not in self._buffer:
            return []

        *complete, self._buffer = self._buffer.split(LINE_TERMINATOR)
        return self._select(complete)

    def finish(self) -> list[EventLine]:
        """Flush at end of stream; an unterminated last line still counts."""
        if self._finished:
            return []
        self._finished = True

        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if not tail:
            return []
        return self._select(tail.split(LINE_TERMINATOR))

    def _select(self, lines: list[str]) -> list[EventLine]:
        events = []
        for raw_line in lines:
            line = raw_line.rstrip("\r")
            if not line.strip():
                continue
            if not line.startswith(self.event_prefix):
                continue
            events.append(
                EventLine(raw=line, payload=line[len(self.event_prefix):].strip())
            )
        return events


async def iter_event_lines(
    chunks: AsyncIterable[bytes],
    decoder: FrameDecoder | None = None,
) -> AsyncGenerator[EventLine]:
    """Lazily turn an async byte stream into event lines."""
    decoder = decoder or FrameDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.finish():
        yield event
