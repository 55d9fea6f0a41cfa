"""
Presence-routed direct messages and notifications.

The router never performs I/O: it resolves recipients and returns the
deliveries the hub should send.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from bizlink.core.observability.metrics import record
from bizlink.core.websocket.events import Delivery, RECEIVE_MESSAGE, RECEIVE_NOTIFICATION
from bizlink.core.websocket.presence import PresenceRegistry
from bizlink.core.websocket.session import ConnectionSession

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MessageRouter:
    """Fan-out of one message to the recipient's live session (if any) plus a sender echo."""

    def __init__(
        self,
        registry: PresenceRegistry,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.registry = registry
        self._clock = clock

    def route(
        self,
        sender: ConnectionSession,
        sender_id: str,
        recipient_id: Optional[str],
        content: str,
    ) -> List[Delivery]:
        """
        At most one delivery to the recipient, always exactly one echo to the sender.

        An offline recipient is not an error: the real-time copy is dropped.
        A message to oneself arrives twice (copy plus echo) with the same `id`.
        """
        payload = {
            "id": uuid.uuid4().hex,
            "senderId": sender_id,
            "recipientId": recipient_id,
            "content": content,
            "createdAt": self._clock().isoformat(),
        }
        deliveries: List[Delivery] = []
        recipient = self.registry.lookup(recipient_id) if recipient_id else None
        if recipient is None:
            record("recipient_misses")
            logger.debug("Recipient %s offline; message %s echoed only", recipient_id, payload["id"])
        else:
            deliveries.append(Delivery(recipient, RECEIVE_MESSAGE, payload))
        deliveries.append(Delivery(sender, RECEIVE_MESSAGE, payload))
        record("messages_routed")
        return deliveries

    def notify(self, user_id: str, notification: Dict[str, Any]) -> List[Delivery]:
        """Deliver a notification to the user's live session; nothing when offline."""
        target = self.registry.lookup(user_id)
        if target is None:
            return []
        payload = dict(notification)
        payload["createdAt"] = self._clock().isoformat()
        record("notifications_sent")
        return [Delivery(target, RECEIVE_NOTIFICATION, payload)]
