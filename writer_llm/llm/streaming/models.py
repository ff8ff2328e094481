"""
Streaming-specific dataclasses.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class StreamChunkType(Enum):
    """Types of processed streaming chunks."""
    CONTENT = "content"
    COMPLETION = "completion"


class StreamState(Enum):
    """Lifecycle of one streamed request."""
    AWAITING_FIRST_EVENT = "awaiting_first_event"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.DONE, StreamState.ERROR)


@dataclass(frozen=True)
class EventLine:
    """One newline-delimited record that carries the event prefix."""
    raw: str
    payload: str


@dataclass(frozen=True)
class StreamChunk:
    """Processed streaming chunk with accumulated state."""
    chunk_type: StreamChunkType
    content: str | None
    accumulated_content: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class AccumulatorState:
    """Mutable state owned by one accumulator for one request."""
    content_buffer: str = ""
    state: StreamState = StreamState.AWAITING_FIRST_EVENT
    line_count: int = 0
    content_count: int = 0
    malformed_count: int = 0
    started_at: float = field(default_factory=time.time)
    first_content_time: float | None = None
    last_event_time: float | None = None

    def update_timing(self, timestamp: float) -> None:
        """Update timing information for latency tracking."""
        self.last_event_time = timestamp
        self.line_count += 1

    @property
    def streaming_duration(self) -> float:
        if self.last_event_time is None:
            return 0.0
        return self.last_event_time - self.started_at


@dataclass(frozen=True)
class StreamingStats:
    """Statistics for streaming performance analysis."""
    total_lines: int
    content_chunks: int
    malformed_lines: int
    total_duration: float
    first_token_latency: float
    final_state: StreamState
