"""
API v1 routes.
"""

from fastapi import APIRouter

from modelvault.api.v1 import admin, artifacts, auth, branches, elements, organizations, projects, users
from modelvault.schemas.common import ErrorResponse

# Typed kernel errors render as ErrorResponse
router = APIRouter(
    responses={
        status_code: {"model": ErrorResponse}
        for status_code in (400, 401, 403, 404, 409, 500)
    }
)

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(organizations.router, prefix="/orgs", tags=["Organizations"])
router.include_router(projects.router, prefix="/orgs/{org_id}/projects", tags=["Projects"])
router.include_router(
    branches.router,
    prefix="/orgs/{org_id}/projects/{project_id}/branches",
    tags=["Branches"],
)
router.include_router(
    artifacts.router,
    prefix="/orgs/{org_id}/projects/{project_id}/branches/{branch_id}/artifacts",
    tags=["Artifacts"],
)
router.include_router(
    elements.router,
    prefix="/orgs/{org_id}/projects/{project_id}/branches/{branch_id}/elements",
    tags=["Elements"],
)
router.include_router(admin.router, prefix="/admin", tags=["Admin"])
