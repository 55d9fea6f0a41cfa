"""
Simple in-memory metrics for the realtime layer: connections, deliveries, streams.
"""
import logging
from typing import Dict

logger = logging.getLogger("bizlink.realtime.metrics")

COUNTERS = (
    "connections_opened",
    "connections_closed",
    "messages_routed",
    "recipient_misses",
    "notifications_sent",
    "malformed_events",
    "broadcasts",
    "streams_completed",
    "streams_failed",
    "streams_cancelled",
    "persist_failures",
)


class RealtimeMetrics:
    """In-memory counters. Only touched from the event loop."""

    def __init__(self) -> None:
        self._counters: Dict[str, int] = {name: 0 for name in COUNTERS}

    def incr(self, name: str, amount: int = 1) -> None:
        if name not in self._counters:
            raise KeyError(f"Unknown counter: {name}")
        self._counters[name] += amount

    def get(self, name: str) -> int:
        return self._counters[name]

    def snapshot(self) -> Dict[str, int]:
        return dict(self._counters)

    def reset(self) -> None:
        for name in self._counters:
            self._counters[name] = 0


_metrics = RealtimeMetrics()


def get_metrics() -> RealtimeMetrics:
    return _metrics


def record(name: str, amount: int = 1) -> None:
    _metrics.incr(name, amount)


def record_stream_result(outcome: str) -> None:
    """outcome: completed | failed | cancelled"""
    _metrics.incr(f"streams_{outcome}")


def record_persist_failure(conversation_id: int) -> None:
    _metrics.incr("persist_failures")
    logger.error("assistant_message_not_persisted conversation_id=%s", conversation_id)
