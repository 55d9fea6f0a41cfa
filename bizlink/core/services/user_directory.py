"""
User directory: platform members plus their live presence.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from bizlink.core.memory.db import db_session
from bizlink.core.memory.models import User
from bizlink.core.memory.repository import UserRepository
from bizlink.core.websocket.presence import PresenceRegistry

logger = logging.getLogger(__name__)

ONLINE = "online"
OFFLINE = "offline"
UNKNOWN = "unknown"


class UserExists(Exception):
    """Raised when creating a user whose id is taken."""


def _user_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "full_name": user.full_name,
        "role": user.role,
        "location": user.location,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


class UserDirectory:
    """Registry reads stay on the event loop; database reads go to the threadpool."""

    def __init__(self, registry: PresenceRegistry, session_factory: Optional[sessionmaker] = None) -> None:
        self.registry = registry
        self._session_factory = session_factory

    def create_user(
        self,
        user_id: str,
        full_name: str,
        role: str,
        location: Optional[str] = None,
    ) -> Dict[str, Any]:
        with db_session(self._session_factory) as db:
            if UserRepository.get_by_id(db, user_id) is not None:
                raise UserExists(user_id)
            user = UserRepository.create(db, user_id, full_name, role, location)
            logger.info("Created user %s (%s)", user_id, role)
            return _user_dict(user)

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        with db_session(self._session_factory) as db:
            user = UserRepository.get_by_id(db, user_id)
            return _user_dict(user) if user else None

    def list_users(self, role: Optional[str] = None) -> List[Dict[str, Any]]:
        with db_session(self._session_factory) as db:
            return [_user_dict(u) for u in UserRepository.get_all(db, role)]

    async def resolve_status(self, user_id: str) -> str:
        """online | offline | unknown (no such user)."""
        if self.registry.is_online(user_id):
            return ONLINE
        user = await run_in_threadpool(self.get_user, user_id)
        return OFFLINE if user else UNKNOWN
