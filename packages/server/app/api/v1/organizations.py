"""
Organization API endpoints.

GET    /api/v1/orgs                          - List orgs for the caller
POST   /api/v1/orgs                          - Create an org (caller becomes owner)
GET    /api/v1/orgs/{orgId}                  - Get org details (member)
DELETE /api/v1/orgs/{orgId}                  - Delete org (owner)
GET    /api/v1/orgs/{orgId}/members          - List members (member)
POST   /api/v1/orgs/{orgId}/members          - Add member (owner/admin)
PATCH  /api/v1/orgs/{orgId}/members/{userId} - Change role (owner/admin)
DELETE /api/v1/orgs/{orgId}/members/{userId} - Remove member (owner/admin)
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Response

from app.core.access import AccessContext
from app.core.auth import get_access_context, require_org_admin, require_org_member, require_org_owner
from app.core.store import RowStore, get_store
from app.services import organizations as org_service
from ota_shared.schemas.organizations import (
    MemberAddRequest,
    MemberListResponse,
    MemberResponse,
    MemberUpdateRequest,
    OrgCreateRequest,
    OrgListResponse,
    OrgResponse,
)

log = structlog.get_logger()
router = APIRouter()


def _org_response(org) -> OrgResponse:
    return OrgResponse.model_validate(org, from_attributes=True)


def _member_response(member, email=None) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        organization_id=member.organization_id,
        user_id=member.user_id,
        email=email,
        role=member.role,
        created_at=member.created_at,
    )


@router.get("", response_model=OrgListResponse)
async def list_orgs(
    ctx: AccessContext = Depends(get_access_context),
    store: RowStore = Depends(get_store),
):
    """List orgs the caller belongs to."""
    items = await org_service.list_user_orgs(ctx.user_id, store)
    return OrgListResponse(data=items)


@router.post("", response_model=OrgResponse, status_code=201)
async def create_org(
    body: OrgCreateRequest,
    ctx: AccessContext = Depends(get_access_context),
    store: RowStore = Depends(get_store),
):
    """Create a new organization. The creator becomes its owner."""
    org = await org_service.create_org(body, ctx.user_id, store)
    return _org_response(org)


@router.get("/{orgId}", response_model=OrgResponse)
async def get_org(
    orgId: uuid.UUID,
    ctx: AccessContext = Depends(require_org_member),
    store: RowStore = Depends(get_store),
):
    org = await org_service.get_org(orgId, store)
    return _org_response(org)


@router.delete("/{orgId}", status_code=204)
async def delete_org(
    orgId: uuid.UUID,
    ctx: AccessContext = Depends(require_org_owner),
    store: RowStore = Depends(get_store),
):
    """Delete the org and everything under it (Owner only)."""
    await org_service.delete_org(orgId, store)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get("/{orgId}/members", response_model=MemberListResponse)
async def list_members(
    orgId: uuid.UUID,
    ctx: AccessContext = Depends(require_org_member),
    store: RowStore = Depends(get_store),
):
    items = await org_service.list_members(orgId, store)
    return MemberListResponse(data=items)


@router.post("/{orgId}/members", response_model=MemberResponse, status_code=201)
async def add_member(
    orgId: uuid.UUID,
    body: MemberAddRequest,
    ctx: AccessContext = Depends(require_org_admin),
    store: RowStore = Depends(get_store),
):
    member = await org_service.add_member(orgId, body, store)
    return _member_response(member, str(body.email) if body.email else None)


@router.patch("/{orgId}/members/{userId}", response_model=MemberResponse)
async def update_member(
    orgId: uuid.UUID,
    userId: uuid.UUID,
    body: MemberUpdateRequest,
    ctx: AccessContext = Depends(require_org_admin),
    store: RowStore = Depends(get_store),
):
    member = await org_service.update_member_role(orgId, userId, body, ctx.org_role, store)
    return _member_response(member)


@router.delete("/{orgId}/members/{userId}", status_code=204)
async def remove_member(
    orgId: uuid.UUID,
    userId: uuid.UUID,
    ctx: AccessContext = Depends(require_org_admin),
    store: RowStore = Depends(get_store),
):
    await org_service.remove_member(orgId, userId, ctx.org_role, store)
    return Response(status_code=204)
