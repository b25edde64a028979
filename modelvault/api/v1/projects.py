"""
Project endpoints, nested under an organization.
"""

from typing import List

from fastapi import APIRouter, Query, status

from modelvault.api.deps import CurrentUser, Resources
from modelvault.kernel.hierarchy import ChainIds
from modelvault.schemas.common import SuccessResponse
from modelvault.schemas.resource import (
    PermissionUpdate,
    ProjectCreate,
    ProjectResponse,
    ProjectUpdate,
)

router = APIRouter()


@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    org_id: str,
    user: CurrentUser,
    resources: Resources,
    archived: bool = Query(False),
):
    return await resources.find_projects(user, org_id, include_archived=archived)


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    org_id: str,
    data: ProjectCreate,
    user: CurrentUser,
    resources: Resources,
):
    """Create a project and its master branch."""
    return await resources.create_project(user, org_id, data)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    org_id: str,
    project_id: str,
    user: CurrentUser,
    resources: Resources,
    archived: bool = Query(False),
):
    return await resources.find_project(user, org_id, project_id, include_archived=archived)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    org_id: str,
    project_id: str,
    data: ProjectUpdate,
    user: CurrentUser,
    resources: Resources,
):
    return await resources.update_project(user, org_id, project_id, data)


@router.delete("/{project_id}", response_model=SuccessResponse)
async def delete_project(
    org_id: str,
    project_id: str,
    user: CurrentUser,
    resources: Resources,
):
    released = await resources.remove_project(user, org_id, project_id)
    return SuccessResponse(
        message=f"Project [{org_id}:{project_id}] removed.",
        data={"blobs_removed": released},
    )


@router.put("/{project_id}/permissions", response_model=ProjectResponse)
async def set_project_permission(
    org_id: str,
    project_id: str,
    data: PermissionUpdate,
    user: CurrentUser,
    resources: Resources,
):
    return await resources.set_permission(
        user, ChainIds(org_id, project_id), data.username, data.level
    )
