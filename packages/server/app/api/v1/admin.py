"""
Administration endpoints (permission-string checks against system-wide roles).

POST /api/v1/admin/teams                         - Create team (manage:teams)
POST /api/v1/admin/teams/members                 - Add user to team (manage:teams)
POST /api/v1/admin/roles                         - Create role (manage:roles)
GET  /api/v1/admin/roles?app_id=                 - List roles (authenticated)
GET  /api/v1/admin/users                         - List users (manage:users)
PUT  /api/v1/admin/users/{userId}                - Update account flags (manage:users)
GET  /api/v1/admin/users/{userId}/permissions    - Effective permissions (read:roles)
GET  /api/v1/admin/users/{userId}/teams          - Team memberships (read:roles)
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends

from app.core.access import AccessContext
from app.core.auth import get_access_context, require_permission
from app.core.permissions import resolve_permissions
from app.core.store import RowStore, get_store
from app.services import teams as team_service
from app.services import users as user_service
from ota_shared.schemas.rbac import (
    PermissionSetResponse,
    RoleCreateRequest,
    RoleListResponse,
    RoleResponse,
    TeamCreateRequest,
    TeamMemberAddRequest,
    TeamMembershipResponse,
    TeamResponse,
)
from ota_shared.schemas.users import UserFlagsUpdateRequest, UserListResponse, UserResponse

router = APIRouter()


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

@router.post("/teams", response_model=TeamResponse, status_code=201)
async def create_team(
    body: TeamCreateRequest,
    ctx: AccessContext = Depends(require_permission("manage:teams")),
    store: RowStore = Depends(get_store),
):
    team = await team_service.create_team(body, ctx.user_id, store)
    return TeamResponse.model_validate(team, from_attributes=True)


@router.post("/teams/members", response_model=TeamMembershipResponse, status_code=201)
async def add_team_member(
    body: TeamMemberAddRequest,
    ctx: AccessContext = Depends(require_permission("manage:teams")),
    store: RowStore = Depends(get_store),
):
    membership = await team_service.add_user_to_team(body, store)
    return TeamMembershipResponse.model_validate(membership, from_attributes=True)


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

@router.post("/roles", response_model=RoleResponse, status_code=201)
async def create_role(
    body: RoleCreateRequest,
    ctx: AccessContext = Depends(require_permission("manage:roles")),
    store: RowStore = Depends(get_store),
):
    role = await team_service.create_role(body, store)
    return RoleResponse.model_validate(role, from_attributes=True)


@router.get("/roles", response_model=RoleListResponse)
async def list_roles(
    app_id: Optional[uuid.UUID] = None,
    ctx: AccessContext = Depends(get_access_context),
    store: RowStore = Depends(get_store),
):
    """System-wide roles, or the roles of ``app_id``."""
    roles = await team_service.list_roles(app_id, store)
    return RoleListResponse(data=[RoleResponse.model_validate(r, from_attributes=True) for r in roles])


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@router.get("/users", response_model=UserListResponse)
async def list_users(
    is_active: Optional[bool] = None,
    ctx: AccessContext = Depends(require_permission("manage:users")),
    store: RowStore = Depends(get_store),
):
    users = await user_service.list_users(store, is_active=is_active)
    return UserListResponse(data=[UserResponse.model_validate(u, from_attributes=True) for u in users])


@router.put("/users/{userId}", response_model=UserResponse)
async def update_user(
    userId: uuid.UUID,
    body: UserFlagsUpdateRequest,
    ctx: AccessContext = Depends(require_permission("manage:users")),
    store: RowStore = Depends(get_store),
):
    user = await user_service.update_user_flags(userId, body, store)
    return UserResponse.model_validate(user, from_attributes=True)


@router.get("/users/{userId}/permissions", response_model=PermissionSetResponse)
async def get_user_permissions(
    userId: uuid.UUID,
    app_id: Optional[uuid.UUID] = None,
    ctx: AccessContext = Depends(require_permission("read:roles")),
    store: RowStore = Depends(get_store),
):
    """Effective permission set of a user, system-wide or for ``app_id``."""
    permissions = await resolve_permissions(userId, app_id, store)
    return PermissionSetResponse(user_id=userId, scope=app_id, permissions=sorted(permissions))


@router.get("/users/{userId}/teams", response_model=list[TeamResponse])
async def get_user_teams(
    userId: uuid.UUID,
    ctx: AccessContext = Depends(require_permission("read:roles")),
    store: RowStore = Depends(get_store),
):
    teams = await team_service.list_user_teams(userId, store)
    return [TeamResponse.model_validate(t, from_attributes=True) for t in teams]
