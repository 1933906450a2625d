"""
User self-service endpoints.

GET    /api/v1/users/profile            - Caller's stored profile
PUT    /api/v1/users/profile            - Update name and phone
GET    /api/v1/users/dashboard/context  - Profile plus org memberships
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.access import AccessContext
from app.core.auth import get_access_context
from app.core.store import RowStore, get_store
from app.services import users as user_service
from ota_shared.schemas.users import (
    DashboardContextResponse,
    DashboardOrg,
    ProfileUpdateRequest,
    UserResponse,
)

router = APIRouter()


@router.get("/profile", response_model=UserResponse)
async def get_profile(
    ctx: AccessContext = Depends(get_access_context),
    store: RowStore = Depends(get_store),
):
    user = await user_service.get_profile(ctx.user_id, store)
    return UserResponse.model_validate(user, from_attributes=True)


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    ctx: AccessContext = Depends(get_access_context),
    store: RowStore = Depends(get_store),
):
    """Update the caller's own profile."""
    user = await user_service.update_profile(ctx.user_id, body, store)
    return UserResponse.model_validate(user, from_attributes=True)


@router.get("/dashboard/context", response_model=DashboardContextResponse)
async def get_dashboard_context(
    ctx: AccessContext = Depends(get_access_context),
    store: RowStore = Depends(get_store),
):
    context = await user_service.dashboard_context(ctx.user_id, store)
    user = context["user"]
    return DashboardContextResponse(
        user=UserResponse.model_validate(user, from_attributes=True) if user else None,
        organizations=[DashboardOrg(**org) for org in context["organizations"]],
    )
