"""
Onboarding endpoint.

POST /api/v1/onboarding/complete - first organization + first app for the caller
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.access import AccessContext
from app.core.auth import get_access_context
from app.core.store import RowStore, get_store
from app.services import provisioning
from ota_shared.schemas.apps import AppResponse
from ota_shared.schemas.onboarding import OnboardingRequest, OnboardingResponse
from ota_shared.schemas.organizations import OrgResponse

router = APIRouter()


@router.post("/complete", response_model=OnboardingResponse, status_code=201)
async def complete_onboarding(
    body: OnboardingRequest,
    ctx: AccessContext = Depends(get_access_context),
    store: RowStore = Depends(get_store),
):
    """Create the caller's organization (as owner) and its first app (as app admin)."""
    result = await provisioning.onboard(ctx.user_id, body, store)
    return OnboardingResponse(
        organization=OrgResponse.model_validate(result.organization, from_attributes=True),
        app=AppResponse.model_validate(result.app, from_attributes=True),
        permission_granted=result.permission_granted,
    )
