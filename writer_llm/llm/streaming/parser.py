"""
Event accumulation: event lines -> content deltas -> full generated text.
"""

from __future__ import annotations

import inspect
import json
import time
from collections.abc import AsyncGenerator, AsyncIterable, Awaitable, Callable
from contextlib import aclosing
from typing import Any

import structlog

from ..exceptions import StreamingError
from .models import (
    AccumulatorState,
    EventLine,
    StreamChunk,
    StreamChunkType,
    StreamingStats,
    StreamState,
)

DONE_SENTINEL = "[DONE]"

ProgressCallback = Callable[[str], Awaitable[None] | None]

logger = structlog.get_logger(__name__)


def extract_delta_content(data: Any) -> str | None:
    """Return `choices[0].delta.content` when it is a string, else None."""
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


class EventAccumulator:
    """
    Folds the event lines of one streamed response into a growing text.

    One accumulator belongs to exactly one request. Its state moves
    AWAITING_FIRST_EVENT -> STREAMING -> DONE | ERROR and never leaves a
    terminal state.
    """

    def __init__(
        self,
        done_sentinel: str = DONE_SENTINEL,
        log: Any | None = None,
    ):
        self.done_sentinel = done_sentinel
        self.state = AccumulatorState()
        self._log = log or logger

    @property
    def text(self) -> str:
        return self.state.content_buffer

    @property
    def stream_state(self) -> StreamState:
        return self.state.state

    def process_line(self, line: EventLine) -> StreamChunk | None:
        """
        Process one event line.

        Returns:
            A CONTENT chunk for a non-empty delta, a COMPLETION chunk for the
            sentinel, or None for lines that carry nothing to append.

        Raises:
            StreamingError: The accumulator is already DONE or ERROR.
        """
        if self.state.state.is_terminal:
            raise StreamingError(
                f"Event received after stream reached {self.state.state.value}"
            )

        self.state.update_timing(time.time())
        if self.state.state is StreamState.AWAITING_FIRST_EVENT:
            self.state.state = StreamState.STREAMING

        payload = line.payload.strip()
        if payload == self.done_sentinel:
            return self.complete()

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            self.state.malformed_count += 1
            self._log.warning(
                "Skipping malformed stream line",
                error=str(e),
                raw_data=payload,
            )
            return None

        if isinstance(data, dict) and data.get("error"):
            self._log.warning("Provider reported an error in stream", error=data["error"])
            return None

        content = extract_delta_content(data)
        if not content:
            return None

        if self.state.first_content_time is None:
            self.state.first_content_time = time.time()
        self.state.content_buffer += content
        self.state.content_count += 1
        return StreamChunk(
            chunk_type=StreamChunkType.CONTENT,
            content=content,
            accumulated_content=self.state.content_buffer,
        )

    def complete(self) -> StreamChunk:
        """Mark the stream DONE and return the completion chunk."""
        if self.state.state is StreamState.ERROR:
            raise StreamingError("Cannot complete a failed stream")
        self.state.state = StreamState.DONE
        return StreamChunk(
            chunk_type=StreamChunkType.COMPLETION,
            content=None,
            accumulated_content=self.state.content_buffer,
        )

    def fail(self) -> None:
        """Mark the stream ERROR; accumulated text is no longer a result."""
        self.state.state = StreamState.ERROR

    async def iter_chunks(
        self, lines: AsyncIterable[EventLine]
    ) -> AsyncGenerator[StreamChunk]:
        """
        Yield one CONTENT chunk per delta and exactly one COMPLETION chunk.

        Consumption stops at the sentinel even if more lines follow. A line
        source that ends without a sentinel completes the stream as well.
        """
        try:
            async for line in lines:
                chunk = self.process_line(line)
                if chunk is None:
                    continue
                yield chunk
                if chunk.chunk_type is StreamChunkType.COMPLETION:
                    return
        except Exception:
            self.fail()
            raise

        yield self.complete()

    async def consume(
        self,
        lines: AsyncIterable[EventLine],
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """Drive the stream to completion and return the full text."""
        try:
            async with aclosing(self.iter_chunks(lines)) as chunks:
                async for chunk in chunks:
                    if chunk.chunk_type is StreamChunkType.CONTENT and on_progress:
                        result = on_progress(chunk.accumulated_content)
                        if inspect.isawaitable(result):
                            await result
        except Exception:
            self.fail()
            raise
        return self.text

    def get_streaming_stats(self) -> StreamingStats:
        """Generate streaming statistics."""
        first_token_latency = (
            self.state.first_content_time - self.state.started_at
            if self.state.first_content_time is not None else 0.0
        )
        return StreamingStats(
            total_lines=self.state.line_count,
            content_chunks=self.state.content_count,
            malformed_lines=self.state.malformed_count,
            total_duration=self.state.streaming_duration,
            first_token_latency=first_token_latency,
            final_state=self.state.state,
        )
