"""Observability: metrics for the realtime layer and tracing for reply streams."""
from bizlink.core.observability.tracing import stream_trace
from bizlink.core.observability.metrics import (
    RealtimeMetrics,
    get_metrics,
    record,
    record_persist_failure,
    record_stream_result,
)

__all__ = [
    "stream_trace",
    "RealtimeMetrics",
    "get_metrics",
    "record",
    "record_persist_failure",
    "record_stream_result",
]
