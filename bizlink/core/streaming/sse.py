"""
Server-Sent Events framing for reply streams.

Token frames carry only the incremental text: `data: <token>\\n\\n`.
The stream ends with `data: [END]\\n\\n`, or with an `event: error` frame.
"""
from typing import AsyncIterator

from bizlink.core.streaming.bridge import END, ERROR, TOKEN, StreamEvent

END_SENTINEL = "[END]"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_data_frame(text: str, event: str = "") -> str:
    """
    One SSE frame. Line breaks inside text become separate `data:` lines,
    which an EventSource client joins back with "\\n".
    """
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    head = f"event: {event}\n" if event else ""
    return head + "".join(f"data: {line}\n" for line in normalized.split("\n")) + "\n"


END_FRAME = format_data_frame(END_SENTINEL)


async def sse_frames(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    """Map bridge events onto SSE frames."""
    async for ev in events:
        if ev.kind == TOKEN:
            yield format_data_frame(ev.text)
        elif ev.kind == END:
            yield END_FRAME
        elif ev.kind == ERROR:
            yield format_data_frame(ev.text, event="error")
