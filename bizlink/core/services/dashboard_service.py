"""
Dashboard broadcast: aggregate snapshot pushed to the "dashboard" group,
on demand after writes and every DASHBOARD_INTERVAL seconds.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from bizlink.core.memory.db import db_session
from bizlink.core.memory.repository import (
    ChatMessageRepository,
    ChatSessionRepository,
    UserRepository,
)
from bizlink.core.websocket.events import DASHBOARD_UPDATE
from bizlink.core.websocket.groups import DASHBOARD_GROUP
from bizlink.core.websocket.manager import RealtimeHub

logger = logging.getLogger(__name__)


class DashboardService:
    def __init__(
        self,
        hub: RealtimeHub,
        session_factory: Optional[sessionmaker] = None,
        interval: float = 30.0,
    ) -> None:
        self.hub = hub
        self.interval = interval
        self._session_factory = session_factory
        self._task: Optional[asyncio.Task] = None

    def _load_counts(self) -> Dict[str, Any]:
        with db_session(self._session_factory) as db:
            users_by_role = UserRepository.count_by_role(db)
            return {
                "users": sum(users_by_role.values()),
                "usersByRole": users_by_role,
                "conversations": ChatSessionRepository.count(db),
                "chatMessages": ChatMessageRepository.count(db),
            }

    async def snapshot(self) -> Dict[str, Any]:
        """Current aggregate state; presence numbers are read on the event loop."""
        snapshot = await run_in_threadpool(self._load_counts)
        snapshot["onlineUsers"] = len(self.hub.registry)
        snapshot["connections"] = self.hub.connection_count
        snapshot["generatedAt"] = datetime.now(timezone.utc).isoformat()
        return snapshot

    async def push(self) -> int:
        """
        Broadcast a fresh snapshot to the dashboard group.
        Skips the database entirely when nobody is listening.
        """
        if self.hub.groups.size(DASHBOARD_GROUP) == 0:
            return 0
        snapshot = await self.snapshot()
        sent = await self.hub.broadcast(DASHBOARD_GROUP, DASHBOARD_UPDATE, snapshot)
        logger.debug("Dashboard update sent to %d sessions", sent)
        return sent

    async def notify_changed(self) -> None:
        """Background-task entry point after a write; never raises."""
        try:
            await self.push()
        except Exception as e:
            logger.exception("Dashboard update after write failed: %s", e)

    async def run_loop(self) -> None:
        while True:
            try:
                await self.push()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("Dashboard loop: %s", e)
            await asyncio.sleep(self.interval)

    async def start(self) -> None:
        """Start the periodic push (no-op when interval <= 0 or already running)."""
        if self._task is not None or self.interval <= 0:
            return
        self._task = asyncio.create_task(self.run_loop())
        logger.info("Dashboard broadcast started (every %ss)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Dashboard broadcast stopped")
