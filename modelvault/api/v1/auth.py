"""
Authentication endpoints.
"""

from fastapi import APIRouter, HTTPException, status

from modelvault.api.deps import CurrentUser, Users
from modelvault.kernel.identity.jwt import TokenResponse, create_access_token
from modelvault.schemas.user import LoginRequest, UserResponse

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
async def login(data: LoginRequest, users: Users):
    """
    Exchange local credentials for a bearer token.

    Externally managed users authenticate with their provider instead.
    """
    user = await users.authenticate(data.username, data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )
    return create_access_token(user.username)


@router.get("/me", response_model=UserResponse)
async def whoami(user: CurrentUser):
    return user
