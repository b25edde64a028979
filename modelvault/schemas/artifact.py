"""
Artifact schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Base64Bytes, BaseModel, ConfigDict, Field


class ArtifactCreate(BaseModel):
    """Artifact creation request. The blob travels separately."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, max_length=64)
    filename: Optional[str] = Field(None, max_length=255)
    content_type: Optional[str] = Field(None, max_length=255)
    custom: Dict[str, Any] = Field(default_factory=dict)


class ArtifactUpdate(BaseModel):
    """Artifact metadata patch. Unset fields are left alone."""

    model_config = ConfigDict(extra="forbid")

    filename: Optional[str] = Field(None, max_length=255)
    content_type: Optional[str] = Field(None, max_length=255)
    custom: Optional[Dict[str, Any]] = None
    archived: Optional[bool] = None


class ArtifactHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hash: Optional[str]
    user: str
    timestamp: datetime


class ArtifactResponse(BaseModel):
    """Artifact response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    branch_id: str
    filename: Optional[str]
    content_type: Optional[str]
    custom: Dict[str, Any]
    current_hash: Optional[str]
    history: List[ArtifactHistoryResponse]
    archived: bool
    archived_on: Optional[datetime] = None
    archived_by: Optional[str] = None
    created_on: datetime
    updated_on: datetime
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None


class GarbageCollectionResponse(BaseModel):
    deleted: List[str]
    count: int


class ArtifactUpload(ArtifactCreate):
    """Artifact creation body with an optional base64-encoded blob."""

    blob: Optional[Base64Bytes] = None


class ArtifactPatch(ArtifactUpdate):
    """Artifact update body with an optional base64-encoded blob."""

    blob: Optional[Base64Bytes] = None
