"""
Branch endpoints, nested under a project.
"""

from typing import List

from fastapi import APIRouter, Query, status

from modelvault.api.deps import CurrentUser, Resources
from modelvault.kernel.hierarchy import ChainIds
from modelvault.schemas.common import SuccessResponse
from modelvault.schemas.resource import (
    BranchCreate,
    BranchResponse,
    BranchUpdate,
    PermissionUpdate,
)

router = APIRouter()


@router.get("", response_model=List[BranchResponse])
async def list_branches(
    org_id: str,
    project_id: str,
    user: CurrentUser,
    resources: Resources,
    archived: bool = Query(False),
):
    return await resources.find_branches(user, org_id, project_id, include_archived=archived)


@router.post("", response_model=BranchResponse, status_code=status.HTTP_201_CREATED)
async def create_branch(
    org_id: str,
    project_id: str,
    data: BranchCreate,
    user: CurrentUser,
    resources: Resources,
):
    return await resources.create_branch(user, org_id, project_id, data)


@router.get("/{branch_id}", response_model=BranchResponse)
async def get_branch(
    org_id: str,
    project_id: str,
    branch_id: str,
    user: CurrentUser,
    resources: Resources,
    archived: bool = Query(False),
):
    return await resources.find_branch(
        user, org_id, project_id, branch_id, include_archived=archived
    )


@router.patch("/{branch_id}", response_model=BranchResponse)
async def update_branch(
    org_id: str,
    project_id: str,
    branch_id: str,
    data: BranchUpdate,
    user: CurrentUser,
    resources: Resources,
):
    """Tag branches only accept archived toggles."""
    return await resources.update_branch(user, org_id, project_id, branch_id, data)


@router.delete("/{branch_id}", response_model=SuccessResponse)
async def delete_branch(
    org_id: str,
    project_id: str,
    branch_id: str,
    user: CurrentUser,
    resources: Resources,
):
    released = await resources.remove_branch(user, org_id, project_id, branch_id)
    return SuccessResponse(
        message=f"Branch [{org_id}:{project_id}:{branch_id}] removed.",
        data={"blobs_removed": released},
    )


@router.put("/{branch_id}/permissions", response_model=BranchResponse)
async def set_branch_permission(
    org_id: str,
    project_id: str,
    branch_id: str,
    data: PermissionUpdate,
    user: CurrentUser,
    resources: Resources,
):
    return await resources.set_permission(
        user, ChainIds(org_id, project_id, branch_id), data.username, data.level
    )
