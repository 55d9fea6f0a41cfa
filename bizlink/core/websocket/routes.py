"""
WebSocket route: /ws. Accept, run heartbeat task and the receive loop,
clean up presence on disconnect.
"""
import asyncio
import logging

from fastapi import WebSocket

from bizlink.core.config import settings
from bizlink.core.websocket.handler import run_heartbeat_task

logger = logging.getLogger(__name__)


async def websocket_endpoint(websocket: WebSocket) -> None:
    """
    Accept the connection, process frames in receipt order until disconnect.

    Binary frames are handed to the hub like text frames and dropped there as
    malformed; only a transport disconnect or the idle timeout ends the loop.
    """
    hub = websocket.app.state.hub
    session = await hub.connect(websocket)
    heartbeat_task = asyncio.create_task(
        run_heartbeat_task(session, settings.heartbeat_interval, settings.heartbeat_timeout)
    )
    try:
        while session.is_open:
            try:
                message = await asyncio.wait_for(
                    websocket.receive(), timeout=settings.heartbeat_timeout + 5
                )
            except asyncio.TimeoutError:
                logger.info("WebSocket receive timeout for session %s", session.id)
                break
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            await hub.handle_frame(session, raw)
    finally:
        hub.disconnect(session)
        heartbeat_task.cancel()
        try:
            await heartbeat_task
        except asyncio.CancelledError:
            pass
