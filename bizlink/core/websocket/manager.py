"""
Realtime hub: owns the presence registry, broadcast groups and live sessions
of one application, and applies the deliveries handlers produce.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from bizlink.core.observability.metrics import record
from bizlink.core.websocket.events import Delivery, MalformedEvent
from bizlink.core.websocket.groups import BroadcastGroups
from bizlink.core.websocket.handler import dispatch, parse_frame
from bizlink.core.websocket.presence import PresenceRegistry
from bizlink.core.websocket.router import MessageRouter
from bizlink.core.websocket.session import ConnectionSession

logger = logging.getLogger(__name__)

# Max JSON frame size (bytes)
MAX_FRAME_SIZE = 64 * 1024


class RealtimeHub:
    """
    One per application instance; no module-level state, so tests can run
    several isolated hubs side by side.
    """

    def __init__(
        self,
        registry: Optional[PresenceRegistry] = None,
        max_frame_size: int = MAX_FRAME_SIZE,
    ) -> None:
        self.registry = registry or PresenceRegistry()
        self.groups = BroadcastGroups()
        self.router = MessageRouter(self.registry)
        self.max_frame_size = max_frame_size
        self._sessions: Set[ConnectionSession] = set()

    async def connect(self, transport: Any) -> ConnectionSession:
        """Accept the transport and track the new session (CONNECTING -> OPEN)."""
        session = ConnectionSession(transport)
        await session.open()
        self._sessions.add(session)
        record("connections_opened")
        logger.info("Session connected: %s", session.id)
        return session

    def disconnect(self, session: ConnectionSession) -> List[str]:
        """
        OPEN -> CLOSED and drop every trace of the session.

        Synchronous on purpose: no await between the state change and the
        registry cleanup, so a concurrent send can never look up this session.
        Returns the user ids that went offline.
        """
        first_close = session.mark_closed()
        offline = self.registry.unregister(session)
        self.groups.leave_all(session)
        self._sessions.discard(session)
        if first_close:
            record("connections_closed")
        logger.info("Session disconnected: %s (offline: %s)", session.id, offline or "-")
        return offline

    async def deliver(self, deliveries: Iterable[Delivery]) -> int:
        """Send each delivery; returns how many were actually written."""
        sent = 0
        for delivery in deliveries:
            if await delivery.target.send(delivery.event, delivery.data):
                sent += 1
        return sent

    async def handle_frame(self, session: ConnectionSession, raw: Union[str, bytes, None]) -> List[Delivery]:
        """
        Parse, dispatch and deliver one inbound frame.

        Malformed frames are logged and dropped; the session stays open and
        nothing in the registry changes.
        """
        try:
            frame = parse_frame(raw, self.max_frame_size)
            deliveries = dispatch(session, frame, self)
        except MalformedEvent as e:
            record("malformed_events")
            logger.warning("Ignoring malformed event from session %s: %s", session.id, e)
            return []
        await self.deliver(deliveries)
        return deliveries

    async def broadcast(self, group: str, event: str, data: Any) -> int:
        """
        Best-effort push to every current member of group.
        An empty group is a no-op. Returns the number of successful sends.
        """
        members = self.groups.members(group)
        if not members:
            return 0
        record("broadcasts")
        return await self.deliver(Delivery(member, event, data) for member in members)

    @property
    def connection_count(self) -> int:
        return len(self._sessions)

    def status(self) -> Dict[str, int]:
        return {
            "connections": self.connection_count,
            "online_users": len(self.registry),
        }

    async def close_all(self) -> None:
        """Close every live session (server shutdown)."""
        for session in list(self._sessions):
            await session.close(code=1001, reason="server_shutdown")
            self.disconnect(session)
