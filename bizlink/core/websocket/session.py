"""
One live client connection and its server-side state.

State machine: CONNECTING -> OPEN -> CLOSED, no way back out of CLOSED.
"""
import asyncio
import logging
import time
import uuid
from enum import Enum
from typing import Any, Optional, Set

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ConnectionSession:
    """
    Wraps a transport (FastAPI WebSocket or anything with accept/send_json/close).

    Hashed by identity so it can be used directly as a presence handle.
    Sends are serialized per session so frames leave in the order they were queued.
    """

    def __init__(self, transport: Any, session_id: Optional[str] = None) -> None:
        self.id = session_id or uuid.uuid4().hex[:12]
        self.transport = transport
        self.state = SessionState.CONNECTING
        self.user_id: Optional[str] = None
        self.groups: Set[str] = set()
        self.last_seen = time.monotonic()
        self._send_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<ConnectionSession {self.id} user={self.user_id} {self.state.value}>"

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    async def open(self) -> None:
        """Complete the transport handshake."""
        if self.state is not SessionState.CONNECTING:
            raise RuntimeError(f"Cannot open session in state {self.state.value}")
        await self.transport.accept()
        self.state = SessionState.OPEN
        self.touch()

    def touch(self) -> None:
        self.last_seen = time.monotonic()

    def bind_user(self, user_id: str) -> bool:
        """
        Set the session's identity. It is set once; a repeat with the same id
        is accepted, a different id is refused.
        """
        if self.user_id is None:
            self.user_id = user_id
            return True
        return self.user_id == user_id

    def mark_closed(self) -> bool:
        """Move to CLOSED. Returns False if it already was."""
        if self.state is SessionState.CLOSED:
            return False
        self.state = SessionState.CLOSED
        return True

    async def send(self, event: str, data: Any) -> bool:
        """
        Send one event frame. Never raises: a closed session or a failing
        transport returns False.
        """
        if self.state is not SessionState.OPEN:
            return False
        async with self._send_lock:
            if self.state is not SessionState.OPEN:
                return False
            try:
                await self.transport.send_json({"event": event, "data": data})
                return True
            except Exception as e:
                logger.warning("Send %s to session %s failed: %s", event, self.id, e)
                return False

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the transport. Presence cleanup happens in the hub's disconnect."""
        was_open = self.state is SessionState.OPEN
        self.mark_closed()
        if not was_open:
            return
        try:
            await self.transport.close(code=code, reason=reason)
        except Exception as e:
            logger.debug("Close session %s: %s", self.id, e)
