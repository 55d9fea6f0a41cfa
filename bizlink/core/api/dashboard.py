"""
Dashboard endpoints: the current aggregate snapshot, and an on-demand push
to every session in the "dashboard" group.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from bizlink.core.api.deps import get_dashboard
from bizlink.core.services.dashboard_service import DashboardService

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class DashboardRefreshResponse(BaseModel):
    delivered: int


@router.get("")
async def get_dashboard_snapshot(
    dashboard: DashboardService = Depends(get_dashboard),
) -> Dict[str, Any]:
    return await dashboard.snapshot()


@router.post("/refresh", response_model=DashboardRefreshResponse)
async def refresh_dashboard(
    dashboard: DashboardService = Depends(get_dashboard),
) -> DashboardRefreshResponse:
    """Broadcast a fresh snapshot now; delivered is 0 when nobody has joined."""
    return DashboardRefreshResponse(delivered=await dashboard.push())
