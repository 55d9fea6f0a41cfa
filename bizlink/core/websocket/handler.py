"""
Realtime event handling: frame parsing, per-event handlers, heartbeat task.

Each handler receives (session, data, hub), may update the hub's registry or
groups, and returns the deliveries to send. Handlers never touch the transport.
"""
import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from pydantic import ValidationError

from bizlink.core.observability.metrics import record
from bizlink.core.websocket.events import (
    Delivery,
    HEARTBEAT,
    HEARTBEAT_ACK,
    InboundFrame,
    JOIN,
    JOIN_DASHBOARD,
    JOINED,
    JOINED_DASHBOARD,
    JoinPayload,
    LEAVE_DASHBOARD,
    MalformedEvent,
    NotificationPayload,
    SEND_MESSAGE,
    SEND_NOTIFICATION,
    SendMessagePayload,
)
from bizlink.core.websocket.groups import DASHBOARD_GROUP
from bizlink.core.websocket.session import ConnectionSession

logger = logging.getLogger(__name__)


def parse_frame(raw: Any, max_frame_size: int) -> InboundFrame:
    """Decode one text frame. Binary frames are rejected. Raises MalformedEvent."""
    if not isinstance(raw, str):
        raise MalformedEvent(f"expected a text frame, got {type(raw).__name__}")
    size = len(raw.encode("utf-8"))
    if size > max_frame_size:
        raise MalformedEvent(f"frame too large ({size} bytes)")
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedEvent(f"invalid JSON: {e.msg}") from e
    if not isinstance(decoded, dict):
        raise MalformedEvent("frame must be a JSON object")
    try:
        return InboundFrame.model_validate(decoded)
    except ValidationError as e:
        raise MalformedEvent(f"invalid frame: {e.errors()[0]['msg']}") from e


def handle_join(session: ConnectionSession, data: Any, hub: Any) -> List[Delivery]:
    """join(userId): bare string or {"userId": ...}."""
    if isinstance(data, (str, int)) and not isinstance(data, bool):
        data = {"userId": str(data)}
    payload = JoinPayload.model_validate(data)
    if not session.bind_user(payload.user_id):
        raise MalformedEvent(
            f"session already joined as {session.user_id}, refusing {payload.user_id}"
        )
    hub.registry.register(payload.user_id, session)
    logger.info("User %s joined with session %s", payload.user_id, session.id)
    return [Delivery(session, JOINED, {"userId": payload.user_id})]


def handle_send_message(session: ConnectionSession, data: Any, hub: Any) -> List[Delivery]:
    payload = SendMessagePayload.model_validate(data)
    if session.user_id is not None and payload.sender_id != session.user_id:
        raise MalformedEvent(
            f"senderId {payload.sender_id} does not match joined user {session.user_id}"
        )
    return hub.router.route(session, payload.sender_id, payload.recipient_id, payload.content)


def handle_send_notification(session: ConnectionSession, data: Any, hub: Any) -> List[Delivery]:
    payload = NotificationPayload.model_validate(data)
    return hub.router.notify(payload.user_id, payload.notification)


def handle_join_dashboard(session: ConnectionSession, data: Any, hub: Any) -> List[Delivery]:
    hub.groups.join(session, DASHBOARD_GROUP)
    return [Delivery(session, JOINED_DASHBOARD, {"group": DASHBOARD_GROUP})]


def handle_leave_dashboard(session: ConnectionSession, data: Any, hub: Any) -> List[Delivery]:
    hub.groups.leave(session, DASHBOARD_GROUP)
    return []


def handle_heartbeat_ack(session: ConnectionSession, data: Any, hub: Any) -> List[Delivery]:
    return []


EVENT_HANDLERS: Dict[str, Callable[[ConnectionSession, Any, Any], List[Delivery]]] = {
    JOIN: handle_join,
    SEND_MESSAGE: handle_send_message,
    SEND_NOTIFICATION: handle_send_notification,
    JOIN_DASHBOARD: handle_join_dashboard,
    LEAVE_DASHBOARD: handle_leave_dashboard,
    HEARTBEAT_ACK: handle_heartbeat_ack,
}


def dispatch(session: ConnectionSession, frame: InboundFrame, hub: Any) -> List[Delivery]:
    """
    Run the handler for one frame. Any activity counts for liveness.
    Raises MalformedEvent for unknown events or payloads failing validation.
    """
    session.touch()
    handler = EVENT_HANDLERS.get(frame.event)
    if handler is None:
        raise MalformedEvent(f"unknown event {frame.event!r}")
    try:
        return handler(session, frame.data, hub)
    except ValidationError as e:
        raise MalformedEvent(f"invalid {frame.event} payload: {e.errors()[0]['msg']}") from e


async def run_heartbeat_task(
    session: ConnectionSession,
    interval: float,
    timeout: float,
) -> None:
    """
    Every `interval` seconds send a heartbeat; if nothing was received from the
    client for `timeout` seconds, close the connection. The receive loop then
    ends and the normal disconnect path cleans up presence.
    """
    while session.is_open:
        await asyncio.sleep(interval)
        if not session.is_open:
            return
        idle = time.monotonic() - session.last_seen
        if idle >= timeout:
            logger.info("WebSocket heartbeat timeout for session %s (user %s)", session.id, session.user_id)
            await session.close(code=4001, reason="heartbeat_timeout")
            return
        sent = await session.send(HEARTBEAT, {"ts": datetime.now(timezone.utc).isoformat()})
        if not sent:
            logger.debug("Heartbeat send failed for session %s", session.id)
            return
