"""
API v1 Router

Organization routes take ``{orgId}`` and app routes take ``{appId}``; the
authorization dependencies read those path parameters.
"""

from fastapi import APIRouter
from . import admin, apps, env_vars, onboarding, organizations, users

router = APIRouter()

router.include_router(onboarding.router, prefix="/onboarding", tags=["Onboarding"])
router.include_router(organizations.router, prefix="/orgs", tags=["Organizations"])
router.include_router(apps.router, prefix="/apps", tags=["Apps"])
router.include_router(env_vars.router, prefix="/apps/{appId}/env-vars", tags=["Environment Variables"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(admin.router, prefix="/admin", tags=["Administration"])


@router.get("/", tags=["API"])
async def api_root():
    """API root - returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/onboarding/complete",
            "/orgs",
            "/orgs/{orgId}/members",
            "/apps",
            "/apps/{appId}/permissions",
            "/apps/{appId}/env-vars",
            "/users/profile",
            "/users/dashboard/context",
            "/admin/teams",
            "/admin/roles",
            "/admin/users",
        ],
    }
