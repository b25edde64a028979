"""
Organization, project, branch and permission schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from modelvault.kernel.models.project import ProjectVisibility
from modelvault.kernel.permissions import PermissionLevel


class OrgCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    custom: Dict[str, Any] = Field(default_factory=dict)


class OrgUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    custom: Optional[Dict[str, Any]] = None
    archived: Optional[bool] = None


class ProjectCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    visibility: ProjectVisibility = ProjectVisibility.PRIVATE
    custom: Dict[str, Any] = Field(default_factory=dict)


class ProjectUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    visibility: Optional[ProjectVisibility] = None
    custom: Optional[Dict[str, Any]] = None
    archived: Optional[bool] = None


class BranchCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field("", max_length=255)
    source: Optional[str] = Field(None, description="Leaf id of the source branch; defaults to master")
    tag: bool = False
    custom: Dict[str, Any] = Field(default_factory=dict)


class BranchUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, max_length=255)
    custom: Optional[Dict[str, Any]] = None
    archived: Optional[bool] = None


class PermissionUpdate(BaseModel):
    """Set a user's level on a resource; ``none`` removes the user."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(..., min_length=1, max_length=64)
    level: PermissionLevel


class _ResourceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    permissions: Dict[str, List[str]]
    custom: Optional[Dict[str, Any]] = None
    archived: bool
    archived_on: Optional[datetime] = None
    archived_by: Optional[str] = None
    created_on: datetime
    updated_on: datetime
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None


class OrgResponse(_ResourceResponse):
    pass


class ProjectResponse(_ResourceResponse):
    org_id: str
    visibility: str


class BranchResponse(_ResourceResponse):
    project_id: str
    source_id: Optional[str] = None
    tag: bool
