"""
Provisioning: a new user's first organization and first app in one call.

Steps, in order:

1. organization row
2. caller's ``owner`` membership
3. app row under the organization
4. caller's direct ``admin`` grant on the app (non-critical)

Steps 1-3 are all-or-nothing: a failure after step 1 deletes the organization,
and the cascade takes the membership and app with it. Step 4 failing leaves a
usable result (the caller still reaches the app as organization owner) and is
reported through ``permission_granted``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog

from app.core.store import RowStore
from app.models.app import App
from app.models.app_permission import AppPermission
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.services.saga import Saga
from ota_shared.schemas.apps import derive_app_identifier
from ota_shared.schemas.common import TOP_APP_ROLE, OrgRole
from ota_shared.schemas.onboarding import OnboardingRequest

log = structlog.get_logger()


@dataclass(frozen=True)
class OnboardingResult:
    organization: Organization
    app: App
    permission_granted: bool


async def onboard(
    user_id: uuid.UUID, req: OnboardingRequest, store: RowStore
) -> OnboardingResult:
    """Provision organization, ownership, app and app grant for ``user_id``."""
    org_name = req.organization.name.strip()
    app_name = req.app.name.strip()

    async def create_org(results):
        return await store.insert(Organization(name=org_name))

    async def delete_org(org: Organization):
        await store.delete(Organization, id=org.id)
        log.info("onboarding.organization_rolled_back", org_id=str(org.id))

    async def add_owner(results):
        return await store.insert(
            OrganizationMember(
                organization_id=results["organization"].id,
                user_id=user_id,
                role=OrgRole.OWNER.value,
            )
        )

    async def create_app(results):
        return await store.insert(
            App(
                app_id=derive_app_identifier(app_name),
                name=app_name,
                platform=req.app.platform.value,
                organization_id=results["organization"].id,
                created_by=user_id,
            )
        )

    async def grant_admin(results):
        return await store.upsert(
            AppPermission,
            {
                "app_id": results["app"].id,
                "user_id": user_id,
                "role": TOP_APP_ROLE.value,
            },
            ("app_id", "user_id"),
        )

    saga = (
        Saga("onboarding")
        .step("organization", create_org, delete_org)
        .step("membership", add_owner)
        .step("app", create_app)
        .step("app_permission", grant_admin, critical=False)
    )
    results = await saga.run()

    granted = "app_permission" in results
    if not granted:
        log.warning(
            "saga.permission_grant_failed",
            user_id=str(user_id),
            app_id=str(results["app"].id),
        )

    log.info(
        "onboarding.completed",
        user_id=str(user_id),
        org_id=str(results["organization"].id),
        app_id=str(results["app"].id),
        permission_granted=granted,
    )
    return OnboardingResult(
        organization=results["organization"],
        app=results["app"],
        permission_granted=granted,
    )
