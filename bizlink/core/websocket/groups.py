"""
Named broadcast groups (e.g. "dashboard") of live sessions.
"""
from typing import Dict, List, Set

from bizlink.core.websocket.session import ConnectionSession

DASHBOARD_GROUP = "dashboard"


class BroadcastGroups:
    """Group name -> member sessions. Mirrors membership onto session.groups."""

    def __init__(self) -> None:
        self._members: Dict[str, Set[ConnectionSession]] = {}

    def join(self, session: ConnectionSession, group: str) -> None:
        self._members.setdefault(group, set()).add(session)
        session.groups.add(group)

    def leave(self, session: ConnectionSession, group: str) -> None:
        members = self._members.get(group)
        if members is not None:
            members.discard(session)
            if not members:
                del self._members[group]
        session.groups.discard(group)

    def leave_all(self, session: ConnectionSession) -> None:
        for group in list(session.groups):
            self.leave(session, group)

    def members(self, group: str) -> List[ConnectionSession]:
        """Snapshot of the current members; safe to iterate across awaits."""
        return list(self._members.get(group, ()))

    def size(self, group: str) -> int:
        return len(self._members.get(group, ()))
