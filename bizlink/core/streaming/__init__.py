"""Token-by-token relay of AI replies to the requesting client."""
from bizlink.core.streaming.bridge import (
    END,
    ERROR,
    STREAM_ERROR_MESSAGE,
    TOKEN,
    StreamEvent,
    StreamingBridge,
)
from bizlink.core.streaming.sse import END_FRAME, SSE_HEADERS, format_data_frame, sse_frames

__all__ = [
    "END",
    "ERROR",
    "STREAM_ERROR_MESSAGE",
    "TOKEN",
    "StreamEvent",
    "StreamingBridge",
    "END_FRAME",
    "SSE_HEADERS",
    "format_data_frame",
    "sse_frames",
]
