"""
Streaming response handling.

- Frame decoding of raw response bytes into SSE event lines
- Delta accumulation into the full generated text
"""

from .decoder import FrameDecoder, iter_event_lines
from .models import EventLine, StreamChunk, StreamChunkType, StreamingStats, StreamState
from .parser import EventAccumulator

__all__ = [
    "EventAccumulator",
    "EventLine",
    "FrameDecoder",
    "StreamChunk",
    "StreamChunkType",
    "StreamState",
    "StreamingStats",
    "iter_event_lines",
]
