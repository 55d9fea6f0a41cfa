"""
Health and status endpoints.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from bizlink.core.api.deps import get_hub
from bizlink.core.observability.metrics import get_metrics
from bizlink.core.websocket.manager import RealtimeHub

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness check."""
    return {
        "status": "ok",
        "service": "bizlink-core",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/api/status")
async def status(hub: RealtimeHub = Depends(get_hub)):
    """Realtime layer status: live connections, online users and counters."""
    return {
        **hub.status(),
        "metrics": get_metrics().snapshot(),
    }
