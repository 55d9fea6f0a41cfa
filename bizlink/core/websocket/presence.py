"""
Presence registry: user id -> the one live session addressed for that user.

Pure in-memory and synchronous: every call completes without suspending, so
all mutations are serialized by the event loop that owns the registry.
"""
import logging
from typing import Dict, Hashable, List, Optional, Set

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """
    Maps a user identity to zero-or-one session handle.

    A reverse index (handle -> user ids) makes `unregister` proportional to the
    number of identities the handle owns instead of the registry size.
    """

    def __init__(self) -> None:
        self._by_user: Dict[str, Hashable] = {}
        self._by_handle: Dict[Hashable, Set[str]] = {}

    def register(self, user_id: str, handle: Hashable) -> None:
        """Upsert: the latest registration for user_id wins."""
        previous = self._by_user.get(user_id)
        if previous is not None and previous is not handle:
            owned = self._by_handle.get(previous)
            if owned is not None:
                owned.discard(user_id)
                if not owned:
                    del self._by_handle[previous]
            logger.info("Presence for user_id=%s moved to a newer session", user_id)
        self._by_user[user_id] = handle
        self._by_handle.setdefault(handle, set()).add(user_id)

    def lookup(self, user_id: str) -> Optional[Hashable]:
        return self._by_user.get(user_id)

    def unregister(self, handle: Hashable) -> List[str]:
        """
        Remove every entry still pointing at handle.

        Entries that a newer session has taken over are left alone.
        Returns the user ids that went offline.
        """
        removed = []
        for user_id in self._by_handle.pop(handle, set()):
            if self._by_user.get(user_id) is handle:
                del self._by_user[user_id]
                removed.append(user_id)
        return sorted(removed)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._by_user

    def online_user_ids(self) -> List[str]:
        return sorted(self._by_user)

    def __len__(self) -> int:
        return len(self._by_user)
