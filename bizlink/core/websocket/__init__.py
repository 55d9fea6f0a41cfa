"""
WebSocket layer: presence, direct messages, notifications, dashboard group, heartbeat.

One presence entry per user; the latest join wins.
"""

from bizlink.core.websocket.manager import RealtimeHub
from bizlink.core.websocket.presence import PresenceRegistry
from bizlink.core.websocket.session import ConnectionSession, SessionState

__all__ = ["RealtimeHub", "PresenceRegistry", "ConnectionSession", "SessionState"]
