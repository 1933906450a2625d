"""
App service: app CRUD and direct app grants.
"""

from __future__ import annotations

import uuid

import structlog

from app.core.access import ORG_ADMIN
from app.core.errors import Conflict, InputError, ResourceNotFound
from app.core.store import RowStore
from app.models.app import App
from app.models.app_permission import AppPermission
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from ota_shared.schemas.apps import (
    AppCreateRequest,
    AppPermissionGrantRequest,
    AppUpdateRequest,
    derive_app_identifier,
)

log = structlog.get_logger()


async def create_app(req: AppCreateRequest, creator_id: uuid.UUID, store: RowStore) -> App:
    """Create an app under an org. The identifier is derived from the name unless given."""
    if await store.select_one(Organization, id=req.organization_id) is None:
        raise ResourceNotFound("Organization not found")

    identifier = req.app_id or derive_app_identifier(req.name)
    if await store.select_one(App, app_id=identifier) is not None:
        raise Conflict(f"App identifier '{identifier}' is already taken")

    app = await store.insert(
        App(
            app_id=identifier,
            name=req.name,
            platform=req.platform.value,
            icon_url=req.icon_url,
            organization_id=req.organization_id,
            created_by=creator_id,
        )
    )
    log.info("app.created", app_id=str(app.id), identifier=identifier, org_id=str(req.organization_id))
    return app


async def get_app(app_id: uuid.UUID, store: RowStore) -> App:
    app = await store.select_one(App, id=app_id)
    if app is None:
        raise ResourceNotFound("App not found")
    return app


async def update_app(app_id: uuid.UUID, req: AppUpdateRequest, store: RowStore) -> App:
    # icon_url may be cleared; name and platform may not
    patch = {
        k: v for k, v in req.model_dump(exclude_unset=True, mode="json").items()
        if v is not None or k == "icon_url"
    }
    if not patch:
        raise InputError("Nothing to update")
    updated = await store.update(App, patch, id=app_id)
    if not updated:
        raise ResourceNotFound("App not found")
    log.info("app.updated", app_id=str(app_id), fields=sorted(patch))
    return updated[0]


async def delete_app(app_id: uuid.UUID, store: RowStore) -> None:
    """Delete an app. Grants, teams, roles and env vars go with it."""
    deleted = await store.delete(App, id=app_id)
    if not deleted:
        raise ResourceNotFound("App not found")
    log.info("app.deleted", app_id=str(app_id))


async def list_user_apps(user_id: uuid.UUID, store: RowStore) -> list[App]:
    """Apps the user can reach: direct grants plus every app of an org they own or administer."""
    grants = await store.select(AppPermission, user_id=user_id)
    elevated = await store.select(OrganizationMember, user_id=user_id, in_={"role": ORG_ADMIN})

    apps: dict[uuid.UUID, App] = {}
    if grants:
        for app in await store.select(App, in_={"id": [g.app_id for g in grants]}):
            apps[app.id] = app
    if elevated:
        org_ids = [m.organization_id for m in elevated]
        for app in await store.select(App, in_={"organization_id": org_ids}):
            apps[app.id] = app
    return sorted(apps.values(), key=lambda a: a.name)


# ---------------------------------------------------------------------------
# Direct grants
# ---------------------------------------------------------------------------

async def grant_app_permission(
    app_id: uuid.UUID, req: AppPermissionGrantRequest, store: RowStore
) -> AppPermission:
    """Set the user's role on the app, replacing any previous grant."""
    grant = await store.upsert(
        AppPermission,
        {"app_id": app_id, "user_id": req.user_id, "role": req.role.value},
        ("app_id", "user_id"),
    )
    log.info("app.permission_granted", app_id=str(app_id), user_id=str(req.user_id), role=req.role.value)
    return grant


async def revoke_app_permission(app_id: uuid.UUID, user_id: uuid.UUID, store: RowStore) -> None:
    deleted = await store.delete(AppPermission, app_id=app_id, user_id=user_id)
    if not deleted:
        raise ResourceNotFound("Permission not found")
    log.info("app.permission_revoked", app_id=str(app_id), user_id=str(user_id))


async def list_app_permissions(app_id: uuid.UUID, store: RowStore) -> list[AppPermission]:
    return await store.select(AppPermission, app_id=app_id)
