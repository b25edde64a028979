"""
FastAPI dependencies for authentication, database sessions and services.
"""

from functools import lru_cache
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from modelvault.config import get_settings
from modelvault.database import async_session_maker
from modelvault.errors import NotFoundError
from modelvault.kernel.artifacts import ArtifactService, BlobStore
from modelvault.kernel.elements import ElementService
from modelvault.kernel.identity.jwt import verify_access_token
from modelvault.kernel.identity.user_service import UserService
from modelvault.kernel.models import User
from modelvault.kernel.resources import ResourceService


# Security scheme
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a request-scoped session.

    Services commit their own work; anything left uncommitted when the
    request fails is rolled back.
    """
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@lru_cache
def get_blob_store() -> BlobStore:
    """Process-wide blob store; its shard locks must be shared across requests."""
    return BlobStore.from_settings(get_settings())


DbSession = Annotated[AsyncSession, Depends(get_db)]
Blobs = Annotated[BlobStore, Depends(get_blob_store)]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
) -> User:
    """Get current authenticated user or raise 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await UserService(db).get_user(payload.sub)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_artifact_service(db: DbSession, blobs: Blobs) -> ArtifactService:
    return ArtifactService(db, blobs)


def get_resource_service(db: DbSession, blobs: Blobs) -> ResourceService:
    return ResourceService(db, blobs)


def get_element_service(db: DbSession) -> ElementService:
    return ElementService(db)


def get_user_service(db: DbSession) -> UserService:
    return UserService(db)


Artifacts = Annotated[ArtifactService, Depends(get_artifact_service)]
Elements = Annotated[ElementService, Depends(get_element_service)]
Resources = Annotated[ResourceService, Depends(get_resource_service)]
Users = Annotated[UserService, Depends(get_user_service)]
