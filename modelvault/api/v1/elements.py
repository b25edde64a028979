"""
Element endpoints, nested under a branch.
"""

from typing import List, Optional

from fastapi import APIRouter, Query, status

from modelvault.api.deps import CurrentUser, Elements
from modelvault.kernel.hierarchy import ChainIds
from modelvault.schemas.common import PaginatedResponse
from modelvault.schemas.element import (
    ElementCreate,
    ElementRemoval,
    ElementResponse,
    ElementUpdate,
)

router = APIRouter()


@router.get("", response_model=PaginatedResponse[ElementResponse])
async def list_elements(
    org_id: str,
    project_id: str,
    branch_id: str,
    user: CurrentUser,
    elements: Elements,
    parent: Optional[str] = Query(None, description="Only the direct children of this element"),
    limit: int = Query(0, ge=0, description="0 returns every element"),
    skip: int = Query(0, ge=0),
    archived: bool = Query(False),
):
    found = await elements.find_elements(
        user,
        ChainIds(org_id, project_id, branch_id),
        parent=parent,
        include_archived=archived,
        limit=limit,
        skip=skip,
    )
    return PaginatedResponse[ElementResponse].create(
        [ElementResponse.model_validate(e) for e in found], limit=limit, skip=skip
    )


@router.post("", response_model=ElementResponse, status_code=status.HTTP_201_CREATED)
async def create_element(
    org_id: str,
    project_id: str,
    branch_id: str,
    data: ElementCreate,
    user: CurrentUser,
    elements: Elements,
):
    return await elements.create(user, ChainIds(org_id, project_id, branch_id), data)


@router.delete("", response_model=ElementRemoval)
async def delete_elements(
    org_id: str,
    project_id: str,
    branch_id: str,
    user: CurrentUser,
    elements: Elements,
    ids: List[str] = Query(..., description="Element ids to remove with their subtrees"),
):
    removed = await elements.remove(user, ChainIds(org_id, project_id, branch_id), ids)
    return ElementRemoval(removed=removed, count=len(removed))


@router.get("/{element_id}", response_model=ElementResponse)
async def get_element(
    org_id: str,
    project_id: str,
    branch_id: str,
    element_id: str,
    user: CurrentUser,
    elements: Elements,
    archived: bool = Query(False),
):
    return await elements.find(
        user, ChainIds(org_id, project_id, branch_id), element_id, include_archived=archived
    )


@router.patch("/{element_id}", response_model=ElementResponse)
async def update_element(
    org_id: str,
    project_id: str,
    branch_id: str,
    element_id: str,
    data: ElementUpdate,
    user: CurrentUser,
    elements: Elements,
):
    return await elements.update(user, ChainIds(org_id, project_id, branch_id), element_id, data)


@router.delete("/{element_id}", response_model=ElementRemoval)
async def delete_element(
    org_id: str,
    project_id: str,
    branch_id: str,
    element_id: str,
    user: CurrentUser,
    elements: Elements,
):
    removed = await elements.remove(user, ChainIds(org_id, project_id, branch_id), [element_id])
    return ElementRemoval(removed=removed, count=len(removed))
