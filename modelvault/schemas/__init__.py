"""
Pydantic schemas for API request/response validation.
"""

from modelvault.schemas.user import LoginRequest, UserCreate, UserResponse, UserUpdate
from modelvault.schemas.resource import (
    OrgCreate,
    OrgUpdate,
    OrgResponse,
    ProjectCreate,
    ProjectUpdate,
    ProjectResponse,
    BranchCreate,
    BranchUpdate,
    BranchResponse,
    PermissionUpdate,
)
from modelvault.schemas.artifact import (
    ArtifactCreate,
    ArtifactUpdate,
    ArtifactUpload,
    ArtifactPatch,
    ArtifactResponse,
    ArtifactHistoryResponse,
    GarbageCollectionResponse,
)
from modelvault.schemas.element import (
    ElementCreate,
    ElementUpdate,
    ElementResponse,
    ElementRemoval,
)
from modelvault.schemas.common import (
    ErrorResponse,
    SuccessResponse,
    PaginatedResponse,
    HealthResponse,
)

__all__ = [
    # User
    "LoginRequest",
    "UserCreate",
    "UserUpdate",
    "UserResponse",
    # Resources
    "OrgCreate",
    "OrgUpdate",
    "OrgResponse",
    "ProjectCreate",
    "ProjectUpdate",
    "ProjectResponse",
    "BranchCreate",
    "BranchUpdate",
    "BranchResponse",
    "PermissionUpdate",
    # Artifacts
    "ArtifactCreate",
    "ArtifactUpdate",
    "ArtifactUpload",
    "ArtifactPatch",
    "ArtifactResponse",
    "ArtifactHistoryResponse",
    "GarbageCollectionResponse",
    # Elements
    "ElementCreate",
    "ElementUpdate",
    "ElementResponse",
    "ElementRemoval",
    # Common
    "ErrorResponse",
    "SuccessResponse",
    "PaginatedResponse",
    "HealthResponse",
]
