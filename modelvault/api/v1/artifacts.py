"""
Artifact endpoints, nested under a branch.

Metadata travels as JSON with an optional base64 ``blob`` field. Blobs can
also be uploaded raw with ``PUT .../blob`` and downloaded with ``GET .../blob``.
"""

from typing import Dict, List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Query, Request, Response, status

from modelvault.api.deps import Artifacts, CurrentUser
from modelvault.errors import DataFormatError
from modelvault.kernel.hierarchy import ChainIds
from modelvault.schemas.artifact import (
    ArtifactPatch,
    ArtifactResponse,
    ArtifactUpdate,
    ArtifactUpload,
)
from modelvault.schemas.common import PaginatedResponse, SuccessResponse

router = APIRouter()

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _content_disposition(filename: str) -> str:
    """
    Attachment header for any filename.

    Header values travel as latin-1, so names outside printable ASCII (or
    holding quotes) get an ASCII fallback plus an RFC 5987 ``filename*``.
    """
    fallback = "".join(
        c if " " <= c <= "~" and c not in '"\\' else "_" for c in filename
    )
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _custom_filters(raw: List[str]) -> Dict[str, str]:
    """Parse ``key=prefix`` query values."""
    filters = {}
    for item in raw:
        key, sep, prefix = item.partition("=")
        if not sep or not key:
            raise DataFormatError(f"Custom filter [{item}] must have the form key=prefix.")
        filters[key] = prefix
    return filters


@router.get("", response_model=PaginatedResponse[ArtifactResponse])
async def search_artifacts(
    org_id: str,
    project_id: str,
    branch_id: str,
    user: CurrentUser,
    artifacts: Artifacts,
    filename: Optional[str] = Query(None),
    content_type: Optional[str] = Query(None),
    custom: List[str] = Query([], description="key=prefix filters on custom fields"),
    limit: int = Query(0, ge=0, description="0 returns every match"),
    skip: int = Query(0, ge=0),
    archived: bool = Query(False),
):
    found = await artifacts.search(
        user,
        ChainIds(org_id, project_id, branch_id),
        filename=filename,
        content_type=content_type,
        custom=_custom_filters(custom),
        limit=limit,
        skip=skip,
        include_archived=archived,
    )
    return PaginatedResponse[ArtifactResponse].create(
        [ArtifactResponse.model_validate(a) for a in found], limit=limit, skip=skip
    )


@router.post("", response_model=ArtifactResponse, status_code=status.HTTP_201_CREATED)
async def create_artifact(
    org_id: str,
    project_id: str,
    branch_id: str,
    data: ArtifactUpload,
    user: CurrentUser,
    artifacts: Artifacts,
):
    return await artifacts.create(
        user, ChainIds(org_id, project_id, branch_id), data, blob=data.blob
    )


@router.get("/{artifact_id}", response_model=ArtifactResponse)
async def get_artifact(
    org_id: str,
    project_id: str,
    branch_id: str,
    artifact_id: str,
    user: CurrentUser,
    artifacts: Artifacts,
    archived: bool = Query(False),
):
    return await artifacts.find(
        user, ChainIds(org_id, project_id, branch_id), artifact_id, include_archived=archived
    )


@router.patch("/{artifact_id}", response_model=ArtifactResponse)
async def update_artifact(
    org_id: str,
    project_id: str,
    branch_id: str,
    artifact_id: str,
    data: ArtifactPatch,
    user: CurrentUser,
    artifacts: Artifacts,
):
    """Patch metadata; a ``blob`` with new content appends a history entry."""
    patch = ArtifactUpdate(**data.model_dump(exclude_unset=True, exclude={"blob"}))
    return await artifacts.update(
        user, ChainIds(org_id, project_id, branch_id), artifact_id, patch, blob=data.blob
    )


@router.delete("/{artifact_id}", response_model=SuccessResponse)
async def delete_artifact(
    org_id: str,
    project_id: str,
    branch_id: str,
    artifact_id: str,
    user: CurrentUser,
    artifacts: Artifacts,
):
    released = await artifacts.remove(user, ChainIds(org_id, project_id, branch_id), artifact_id)
    return SuccessResponse(
        message=f"Artifact [{artifact_id}] removed.",
        data={"blobs_removed": released},
    )


@router.put("/{artifact_id}/blob", response_model=ArtifactResponse)
async def upload_blob(
    org_id: str,
    project_id: str,
    branch_id: str,
    artifact_id: str,
    request: Request,
    user: CurrentUser,
    artifacts: Artifacts,
):
    """Upload raw bytes as the artifact's new current blob."""
    blob = await request.body()
    return await artifacts.update(
        user,
        ChainIds(org_id, project_id, branch_id),
        artifact_id,
        ArtifactUpdate(),
        blob=blob,
    )


@router.get("/{artifact_id}/blob")
async def download_blob(
    org_id: str,
    project_id: str,
    branch_id: str,
    artifact_id: str,
    user: CurrentUser,
    artifacts: Artifacts,
    blob_hash: Optional[str] = Query(None, alias="hash", description="A hash from the artifact's history"),
):
    artifact, blob = await artifacts.get_blob(
        user, ChainIds(org_id, project_id, branch_id), artifact_id, blob_hash
    )
    headers = {"ETag": f'"{blob_hash or artifact.current_hash}"'}
    if artifact.filename:
        headers["Content-Disposition"] = _content_disposition(artifact.filename)
    return Response(
        content=blob,
        media_type=artifact.content_type or DEFAULT_CONTENT_TYPE,
        headers=headers,
    )
