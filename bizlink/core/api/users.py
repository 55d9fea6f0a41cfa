"""
User endpoints: create/list members and resolve their online status.
"""
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from bizlink.core.api.deps import get_dashboard, get_directory
from bizlink.core.services.dashboard_service import DashboardService
from bizlink.core.services.user_directory import UserDirectory, UserExists

router = APIRouter(prefix="/users", tags=["users"])

Role = Literal["entrepreneur", "investor", "realtor", "supplier", "admin"]


class UserCreateRequest(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    full_name: str = Field(min_length=1)
    role: Role
    location: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    full_name: str
    role: str
    location: Optional[str] = None
    created_at: Optional[str] = None


class UserStatusResponse(BaseModel):
    user_id: str
    status: str  # online, offline, unknown


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: UserCreateRequest,
    background_tasks: BackgroundTasks,
    directory: UserDirectory = Depends(get_directory),
    dashboard: DashboardService = Depends(get_dashboard),
) -> UserResponse:
    try:
        user = await run_in_threadpool(
            directory.create_user, request.id, request.full_name, request.role, request.location
        )
    except UserExists:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")
    background_tasks.add_task(dashboard.notify_changed)
    return UserResponse(**user)


@router.get("", response_model=List[UserResponse])
async def list_users(
    role: Optional[Role] = None,
    directory: UserDirectory = Depends(get_directory),
) -> List[UserResponse]:
    users = await run_in_threadpool(directory.list_users, role)
    return [UserResponse(**u) for u in users]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    directory: UserDirectory = Depends(get_directory),
) -> UserResponse:
    user = await run_in_threadpool(directory.get_user, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse(**user)


@router.get("/{user_id}/status", response_model=UserStatusResponse)
async def get_user_status(
    user_id: str,
    directory: UserDirectory = Depends(get_directory),
) -> UserStatusResponse:
    """Presence of a user as seen by the realtime layer."""
    return UserStatusResponse(user_id=user_id, status=await directory.resolve_status(user_id))
