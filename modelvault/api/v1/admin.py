"""
Administrative endpoints.
"""

from fastapi import APIRouter

from modelvault.api.deps import Artifacts, CurrentUser
from modelvault.schemas.artifact import GarbageCollectionResponse

router = APIRouter()


@router.post("/gc", response_model=GarbageCollectionResponse)
async def collect_garbage(user: CurrentUser, artifacts: Artifacts):
    """Delete every blob no artifact history references. Global admins only."""
    deleted = await artifacts.collect_garbage(user)
    return GarbageCollectionResponse(deleted=deleted, count=len(deleted))
