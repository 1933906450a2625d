"""
Team service: legacy teams, roles and team memberships.

Roles are named bundles of permission strings, either system-wide
(``app_id`` NULL) or scoped to one app. A user picks up a role's permissions
by joining a team with that role.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog

from app.core.errors import Conflict, InputError, ResourceNotFound
from app.core.store import RowStore
from app.models.app import App
from app.models.role import Role
from app.models.team import Team
from app.models.team_membership import TeamMembership
from ota_shared.schemas.rbac import RoleCreateRequest, TeamCreateRequest, TeamMemberAddRequest

log = structlog.get_logger()


async def create_team(req: TeamCreateRequest, creator_id: uuid.UUID, store: RowStore) -> Team:
    if await store.select_one(App, id=req.app_id) is None:
        raise ResourceNotFound("App not found")
    team = await store.insert(
        Team(name=req.name, description=req.description, app_id=req.app_id, created_by=creator_id)
    )
    log.info("team.created", team_id=str(team.id), app_id=str(req.app_id))
    return team


async def add_user_to_team(req: TeamMemberAddRequest, store: RowStore) -> TeamMembership:
    """Put a user on a team with a role. The role must be system-wide or scoped to the team's app."""
    team = await store.select_one(Team, id=req.team_id)
    if team is None:
        raise ResourceNotFound("Team not found")
    role = await store.select_one(Role, id=req.role_id)
    if role is None:
        raise ResourceNotFound("Role not found")
    if role.app_id is not None and role.app_id != team.app_id:
        raise InputError("Role belongs to a different app than the team")

    existing = await store.select_one(
        TeamMembership, team_id=req.team_id, user_id=req.user_id, role_id=req.role_id
    )
    if existing is not None:
        raise Conflict("User already holds this role on the team")

    membership = await store.insert(
        TeamMembership(user_id=req.user_id, team_id=req.team_id, role_id=req.role_id)
    )
    log.info(
        "team.member_added",
        team_id=str(req.team_id),
        user_id=str(req.user_id),
        role_id=str(req.role_id),
    )
    return membership


async def create_role(req: RoleCreateRequest, store: RowStore) -> Role:
    if req.app_id is not None and await store.select_one(App, id=req.app_id) is None:
        raise ResourceNotFound("App not found")
    role = await store.insert(
        Role(
            name=req.name,
            description=req.description,
            app_id=req.app_id,
            permissions=req.permissions,
        )
    )
    log.info("role.created", role_id=str(role.id), app_id=str(req.app_id) if req.app_id else None)
    return role


async def list_roles(app_id: Optional[uuid.UUID], store: RowStore) -> list[Role]:
    """System-wide roles when ``app_id`` is None, otherwise the roles of that app."""
    return await store.select(Role, app_id=app_id)


async def list_user_teams(user_id: uuid.UUID, store: RowStore) -> list[Team]:
    memberships = await store.select(TeamMembership, user_id=user_id)
    if not memberships:
        return []
    return await store.select(Team, in_={"id": list({m.team_id for m in memberships})})
