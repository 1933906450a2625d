"""
App API endpoints.

GET    /api/v1/apps                              - Apps the caller can reach
POST   /api/v1/apps                              - Create an app (org owner/admin)
GET    /api/v1/apps/{appId}                      - App details (any app role)
PATCH  /api/v1/apps/{appId}                      - Rename or change platform/icon (app admin)
DELETE /api/v1/apps/{appId}                      - Delete the app (app admin)
GET    /api/v1/apps/{appId}/access               - Caller's resolved role on the app
GET    /api/v1/apps/{appId}/permissions          - Direct grants (any app role)
POST   /api/v1/apps/{appId}/permissions          - Grant or change a role (app admin)
DELETE /api/v1/apps/{appId}/permissions/{userId} - Revoke a grant (app admin)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response

from app.core.access import ORG_ADMIN, AccessContext, check_org_membership
from app.core.auth import admit, get_access_context, require_app_admin, require_app_viewer
from app.core.store import RowStore, get_store
from app.services import apps as app_service
from ota_shared.schemas.apps import (
    AppAccessResponse,
    AppCreateRequest,
    AppListResponse,
    AppPermissionGrantRequest,
    AppPermissionListResponse,
    AppPermissionResponse,
    AppResponse,
    AppUpdateRequest,
)

router = APIRouter()


def _app_response(app) -> AppResponse:
    return AppResponse.model_validate(app, from_attributes=True)


def _grant_response(grant) -> AppPermissionResponse:
    return AppPermissionResponse.model_validate(grant, from_attributes=True)


@router.get("", response_model=AppListResponse)
async def list_apps(
    ctx: AccessContext = Depends(get_access_context),
    store: RowStore = Depends(get_store),
):
    apps = await app_service.list_user_apps(ctx.user_id, store)
    return AppListResponse(data=[_app_response(a) for a in apps])


@router.post("", response_model=AppResponse, status_code=201)
async def create_app(
    body: AppCreateRequest,
    ctx: AccessContext = Depends(get_access_context),
    store: RowStore = Depends(get_store),
):
    """Create an app in an org the caller owns or administers."""
    decision = await check_org_membership(ctx.user_id, body.organization_id, ORG_ADMIN, store)
    admit(ctx.identity, decision)
    app = await app_service.create_app(body, ctx.user_id, store)
    return _app_response(app)


@router.get("/{appId}", response_model=AppResponse)
async def get_app(
    appId: uuid.UUID,
    ctx: AccessContext = Depends(require_app_viewer),
    store: RowStore = Depends(get_store),
):
    app = await app_service.get_app(appId, store)
    return _app_response(app)


@router.patch("/{appId}", response_model=AppResponse)
async def update_app(
    appId: uuid.UUID,
    body: AppUpdateRequest,
    ctx: AccessContext = Depends(require_app_admin),
    store: RowStore = Depends(get_store),
):
    app = await app_service.update_app(appId, body, store)
    return _app_response(app)


@router.delete("/{appId}", status_code=204)
async def delete_app(
    appId: uuid.UUID,
    ctx: AccessContext = Depends(require_app_admin),
    store: RowStore = Depends(get_store),
):
    """Delete an app and everything scoped to it."""
    await app_service.delete_app(appId, store)
    return Response(status_code=204)


@router.get("/{appId}/access", response_model=AppAccessResponse)
async def get_app_access(
    appId: uuid.UUID,
    ctx: AccessContext = Depends(require_app_viewer),
):
    return AppAccessResponse(
        app_id=appId,
        role=ctx.role,
        via=ctx.decision.via,
        org_role=ctx.org_role,
    )


# ---------------------------------------------------------------------------
# Direct grants
# ---------------------------------------------------------------------------

@router.get("/{appId}/permissions", response_model=AppPermissionListResponse)
async def list_permissions(
    appId: uuid.UUID,
    ctx: AccessContext = Depends(require_app_viewer),
    store: RowStore = Depends(get_store),
):
    grants = await app_service.list_app_permissions(appId, store)
    return AppPermissionListResponse(data=[_grant_response(g) for g in grants])


@router.post("/{appId}/permissions", response_model=AppPermissionResponse)
async def grant_permission(
    appId: uuid.UUID,
    body: AppPermissionGrantRequest,
    ctx: AccessContext = Depends(require_app_admin),
    store: RowStore = Depends(get_store),
):
    grant = await app_service.grant_app_permission(appId, body, store)
    return _grant_response(grant)


@router.delete("/{appId}/permissions/{userId}", status_code=204)
async def revoke_permission(
    appId: uuid.UUID,
    userId: uuid.UUID,
    ctx: AccessContext = Depends(require_app_admin),
    store: RowStore = Depends(get_store),
):
    await app_service.revoke_app_permission(appId, userId, store)
    return Response(status_code=204)
