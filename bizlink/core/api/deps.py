from fastapi import Request

from bizlink.core.memory.store import ConversationStore
from bizlink.core.services.dashboard_service import DashboardService
from bizlink.core.services.user_directory import UserDirectory
from bizlink.core.streaming.bridge import StreamingBridge
from bizlink.core.websocket.manager import RealtimeHub


def get_hub(request: Request) -> RealtimeHub:
    return request.app.state.hub


def get_store(request: Request) -> ConversationStore:
    return request.app.state.store


def get_bridge(request: Request) -> StreamingBridge:
    return request.app.state.bridge


def get_directory(request: Request) -> UserDirectory:
    return request.app.state.directory


def get_dashboard(request: Request) -> DashboardService:
    return request.app.state.dashboard
