"""
Organization service: org CRUD and membership management.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog

from app.core.errors import Conflict, OperationNotPermitted, ResourceNotFound
from app.core.store import RowStore
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.user import User
from app.services.saga import Saga
from ota_shared.schemas.common import OrgRole
from ota_shared.schemas.organizations import (
    MemberAddRequest,
    MemberUpdateRequest,
    OrgCreateRequest,
)

log = structlog.get_logger()


async def list_user_orgs(user_id: uuid.UUID, store: RowStore) -> list[dict]:
    """List all orgs a user belongs to, with their role."""
    memberships = await store.select(OrganizationMember, user_id=user_id)
    if not memberships:
        return []
    roles = {m.organization_id: m.role for m in memberships}
    orgs = await store.select(Organization, in_={"id": list(roles)})
    return [
        {"id": org.id, "name": org.name, "role": roles[org.id]}
        for org in sorted(orgs, key=lambda o: o.name)
    ]


async def create_org(
    req: OrgCreateRequest, creator_id: uuid.UUID, store: RowStore
) -> Organization:
    """Create an org and make the creator its owner."""

    async def create(results):
        return await store.insert(Organization(name=req.name))

    async def rollback(org: Organization):
        await store.delete(Organization, id=org.id)

    async def add_owner(results):
        return await store.insert(
            OrganizationMember(
                organization_id=results["organization"].id,
                user_id=creator_id,
                role=OrgRole.OWNER.value,
            )
        )

    results = await (
        Saga("create_org")
        .step("organization", create, rollback)
        .step("membership", add_owner)
        .run()
    )
    org = results["organization"]
    log.info("org.created", org_id=str(org.id), creator=str(creator_id))
    return org


async def get_org(org_id: uuid.UUID, store: RowStore) -> Organization:
    """Get an org by id; raises 404 if not found."""
    org = await store.select_one(Organization, id=org_id)
    if org is None:
        raise ResourceNotFound("Organization not found")
    return org


async def delete_org(org_id: uuid.UUID, store: RowStore) -> None:
    """Delete an org. Memberships, apps, app grants, teams and app roles cascade."""
    deleted = await store.delete(Organization, id=org_id)
    if not deleted:
        raise ResourceNotFound("Organization not found")
    log.info("org.deleted", org_id=str(org_id))


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

async def list_members(org_id: uuid.UUID, store: RowStore) -> list[dict]:
    """Members of an org, with the profile email where a profile exists."""
    members = await store.select(OrganizationMember, organization_id=org_id)
    users = await store.select(User, in_={"id": [m.user_id for m in members]}) if members else []
    emails = {u.id: u.email for u in users}
    return [
        {
            "id": m.id,
            "organization_id": m.organization_id,
            "user_id": m.user_id,
            "email": emails.get(m.user_id),
            "role": m.role,
            "created_at": m.created_at,
        }
        for m in members
    ]


async def _resolve_member_user(req: MemberAddRequest, store: RowStore) -> uuid.UUID:
    if req.user_id is not None:
        return req.user_id
    user = await store.select_one(User, email=str(req.email))
    if user is None:
        raise ResourceNotFound("User not found")
    return user.id


async def add_member(
    org_id: uuid.UUID, req: MemberAddRequest, store: RowStore
) -> OrganizationMember:
    """Add a user to the org. 409 if already a member."""
    user_id = await _resolve_member_user(req, store)
    existing = await store.select_one(
        OrganizationMember, organization_id=org_id, user_id=user_id
    )
    if existing is not None:
        raise Conflict("User is already a member of this organization")

    member = await store.insert(
        OrganizationMember(organization_id=org_id, user_id=user_id, role=req.role.value)
    )
    log.info("org.member_added", org_id=str(org_id), user_id=str(user_id), role=req.role.value)
    return member


async def _get_member(org_id: uuid.UUID, user_id: uuid.UUID, store: RowStore) -> OrganizationMember:
    member = await store.select_one(OrganizationMember, organization_id=org_id, user_id=user_id)
    if member is None:
        raise ResourceNotFound("Member not found")
    return member


async def _owner_count(org_id: uuid.UUID, store: RowStore) -> int:
    owners = await store.select(
        OrganizationMember, organization_id=org_id, role=OrgRole.OWNER.value
    )
    return len(owners)


async def update_member_role(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    req: MemberUpdateRequest,
    actor_role: Optional[str],
    store: RowStore,
) -> OrganizationMember:
    """Change a member's role.

    Only owners may grant or revoke ``owner``, and the last owner cannot be demoted.
    """
    member = await _get_member(org_id, user_id, store)
    new_role = req.role.value
    touches_owner = OrgRole.OWNER.value in (member.role, new_role)

    if touches_owner and actor_role != OrgRole.OWNER.value:
        raise OperationNotPermitted("Only owners can change owner roles")
    if (
        member.role == OrgRole.OWNER.value
        and new_role != OrgRole.OWNER.value
        and await _owner_count(org_id, store) <= 1
    ):
        raise Conflict("Cannot demote the last owner")

    updated = await store.update(
        OrganizationMember, {"role": new_role}, organization_id=org_id, user_id=user_id
    )
    log.info(
        "org.member_role_changed",
        org_id=str(org_id),
        user_id=str(user_id),
        old_role=member.role,
        new_role=new_role,
    )
    return updated[0]


async def remove_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    actor_role: Optional[str],
    store: RowStore,
) -> None:
    """Remove a member. Only owners may remove owners; the last owner stays."""
    member = await _get_member(org_id, user_id, store)
    if member.role == OrgRole.OWNER.value:
        if actor_role != OrgRole.OWNER.value:
            raise OperationNotPermitted("Only owners can remove owners")
        if await _owner_count(org_id, store) <= 1:
            raise Conflict("Cannot remove the last owner")

    await store.delete(OrganizationMember, organization_id=org_id, user_id=user_id)
    log.info("org.member_removed", org_id=str(org_id), user_id=str(user_id))
