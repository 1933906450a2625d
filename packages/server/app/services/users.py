"""
User service: local profiles, self-service profile edits and account flags.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

import structlog

from app.core.auth import verify_password
from app.core.errors import InputError, InvalidCredential, ResourceNotFound
from app.core.store import RowStore
from app.models.user import User
from app.services.organizations import list_user_orgs
from ota_shared.schemas.users import ProfileUpdateRequest, UserFlagsUpdateRequest

log = structlog.get_logger()


async def get_profile(user_id: uuid.UUID, store: RowStore) -> User:
    user = await store.select_one(User, id=user_id)
    if user is None:
        raise ResourceNotFound("User not found")
    return user


async def list_users(store: RowStore, *, is_active: Optional[bool] = None) -> list[User]:
    filters = {} if is_active is None else {"is_active": is_active}
    users = await store.select(User, **filters)
    return sorted(users, key=lambda u: u.email)


async def update_user_flags(
    user_id: uuid.UUID, req: UserFlagsUpdateRequest, store: RowStore
) -> User:
    patch = req.model_dump(exclude_none=True)
    if not patch:
        raise InputError("Nothing to update")
    updated = await store.update(User, patch, id=user_id)
    if not updated:
        raise ResourceNotFound("User not found")
    log.info("user.flags_updated", user_id=str(user_id), **patch)
    return updated[0]


async def update_profile(
    user_id: uuid.UUID, req: ProfileUpdateRequest, store: RowStore
) -> User:
    """Update the caller's own name and phone."""
    patch = req.model_dump(exclude_unset=True)
    if not patch:
        raise InputError("Nothing to update")
    updated = await store.update(User, patch, id=user_id)
    if not updated:
        raise ResourceNotFound("User not found")
    log.info("user.profile_updated", user_id=str(user_id), fields=sorted(patch))
    return updated[0]


async def dashboard_context(user_id: uuid.UUID, store: RowStore) -> dict[str, Any]:
    """Profile (None before the first sync) and org memberships in one call."""
    user = await store.select_one(User, id=user_id)
    organizations = await list_user_orgs(user_id, store)
    return {"user": user, "organizations": organizations}


async def ensure_profile(provider_user: dict[str, Any], store: RowStore) -> User:
    """Create or refresh the local profile row for a provider account."""
    metadata = provider_user.get("user_metadata") or {}
    values = {
        "id": uuid.UUID(str(provider_user["id"])),
        "email": provider_user.get("email"),
        "first_name": metadata.get("first_name"),
        "last_name": metadata.get("last_name"),
        "is_verified": bool(provider_user.get("email_confirmed_at")),
    }
    user = await store.upsert(User, values, ("id",))
    log.info("user.profile_synced", user_id=str(user.id))
    return user


async def authenticate_password(email: str, password: str, store: RowStore) -> User:
    """Legacy direct login: local bcrypt hash, active accounts only."""
    user = await store.select_one(User, email=email)
    if (
        user is None
        or not user.is_active
        or not user.password_hash
        or not verify_password(password, user.password_hash)
    ):
        log.info("user.password_login_failed")
        raise InvalidCredential("Invalid email or password")
    return user
