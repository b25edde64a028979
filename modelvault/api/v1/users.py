"""
User endpoints.
"""

from typing import List

from fastapi import APIRouter, Query, status

from modelvault.api.deps import CurrentUser, Users
from modelvault.schemas.user import UserCreate, UserResponse, UserUpdate

router = APIRouter()


@router.get("", response_model=List[UserResponse])
async def list_users(
    user: CurrentUser,
    users: Users,
    archived: bool = Query(False, description="Include archived users"),
):
    return await users.find_users(include_archived=archived and user.is_global_admin)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(data: UserCreate, user: CurrentUser, users: Users):
    """Create a user. Global admins only."""
    return await users.create_user(user, data)


@router.get("/{username}", response_model=UserResponse)
async def get_user(username: str, user: CurrentUser, users: Users):
    return await users.get_user(username)


@router.patch("/{username}", response_model=UserResponse)
async def update_user(username: str, data: UserUpdate, user: CurrentUser, users: Users):
    return await users.update_user(user, username, data)


@router.post("/{username}/archive", response_model=UserResponse)
async def archive_user(username: str, user: CurrentUser, users: Users):
    return await users.archive_user(user, username)
