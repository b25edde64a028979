"""
Organization endpoints.
"""

from typing import List

from fastapi import APIRouter, Query, status

from modelvault.api.deps import CurrentUser, Resources
from modelvault.kernel.hierarchy import ChainIds
from modelvault.schemas.common import SuccessResponse
from modelvault.schemas.resource import OrgCreate, OrgResponse, OrgUpdate, PermissionUpdate

router = APIRouter()


@router.get("", response_model=List[OrgResponse])
async def list_orgs(
    user: CurrentUser,
    resources: Resources,
    archived: bool = Query(False),
):
    return await resources.find_orgs(user, include_archived=archived)


@router.post("", response_model=OrgResponse, status_code=status.HTTP_201_CREATED)
async def create_org(data: OrgCreate, user: CurrentUser, resources: Resources):
    return await resources.create_org(user, data)


@router.get("/{org_id}", response_model=OrgResponse)
async def get_org(
    org_id: str,
    user: CurrentUser,
    resources: Resources,
    archived: bool = Query(False),
):
    return await resources.find_org(user, org_id, include_archived=archived)


@router.patch("/{org_id}", response_model=OrgResponse)
async def update_org(org_id: str, data: OrgUpdate, user: CurrentUser, resources: Resources):
    return await resources.update_org(user, org_id, data)


@router.delete("/{org_id}", response_model=SuccessResponse)
async def delete_org(org_id: str, user: CurrentUser, resources: Resources):
    """Remove an organization and everything under it. Global admins only."""
    released = await resources.remove_org(user, org_id)
    return SuccessResponse(message=f"Organization [{org_id}] removed.", data={"blobs_removed": released})


@router.put("/{org_id}/permissions", response_model=OrgResponse)
async def set_org_permission(
    org_id: str,
    data: PermissionUpdate,
    user: CurrentUser,
    resources: Resources,
):
    return await resources.set_permission(user, ChainIds(org_id), data.username, data.level)
