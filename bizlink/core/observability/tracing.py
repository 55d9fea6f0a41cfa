"""
Tracing for AI reply streams: one trace per request.
Logs conversation, outcome, token count and latency.
"""
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator

logger = logging.getLogger("bizlink.streaming.tracing")


@contextmanager
def stream_trace(conversation_id: int) -> Iterator[Dict[str, Any]]:
    """
    Context manager around one streaming request.

    The yielded dict is mutable: the caller updates `tokens` and `outcome`
    and both are logged when the block exits.
    """
    trace = {
        "trace_id": str(uuid.uuid4())[:8],
        "conversation_id": conversation_id,
        "tokens": 0,
        "outcome": "cancelled",
    }
    start = time.perf_counter()
    logger.info("stream_start trace_id=%s conversation_id=%s", trace["trace_id"], conversation_id)
    try:
        yield trace
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "stream_end trace_id=%s conversation_id=%s outcome=%s tokens=%d latency_ms=%.2f",
            trace["trace_id"],
            conversation_id,
            trace["outcome"],
            trace["tokens"],
            latency_ms,
        )
