"""
Authentication and authorization dependencies for the OTA control API.

Supports:
- Provider-issued bearer tokens (GoTrue or offline JWT) via the Identity Resolver
- Opaque ``ota_st_`` session tokens via the Session Ledger (legacy direct login)
- Permission-string checks against team roles
- App role checks with organization owner/admin fallback
- Organization role checks

Every authorization dependency returns an ``AccessContext`` that handlers
take as a parameter; nothing is stashed on the request.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Callable, Optional

import bcrypt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader

from app.core.access import (
    APP_ADMIN,
    APP_DEVELOPER,
    APP_VIEWER,
    ORG_ADMIN,
    ORG_OWNER,
    AccessContext,
    AccessDecision,
    DenialReason,
    PermissionTarget,
    RoleLike,
    check_org_membership,
    check_resource_access,
    normalize_roles,
    strategy_for,
)
from app.core.config import get_settings
from app.core.errors import InputError, Unauthenticated
from app.core.identity import Identity, IdentityResolver, parse_bearer
from app.core.identity_provider import IdentityProvider, get_identity_provider
from app.core.sessions import SessionLedger, is_session_token
from app.core.store import RowStore, get_store

log = structlog.get_logger()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing (legacy session login)
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# Resolver wiring
# ---------------------------------------------------------------------------

def get_identity_resolver(
    provider: IdentityProvider = Depends(get_identity_provider),
    store: RowStore = Depends(get_store),
) -> IdentityResolver:
    return IdentityResolver(provider, store)


def get_session_ledger(store: RowStore = Depends(get_store)) -> SessionLedger:
    return SessionLedger(store, ttl=timedelta(hours=get_settings().session_ttl_hours))


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def get_bearer_token(authorization: Optional[str] = Depends(api_key_header)) -> str:
    return parse_bearer(authorization)


async def get_identity(
    token: str = Depends(get_bearer_token),
    resolver: IdentityResolver = Depends(get_identity_resolver),
    ledger: SessionLedger = Depends(get_session_ledger),
) -> Identity:
    """Main authentication dependency. Session tokens first, provider tokens otherwise."""
    if is_session_token(token):
        identity = await ledger.authenticate(token)
        if identity is None:
            raise Unauthenticated("Invalid or expired session")
        return identity
    return await resolver.resolve_token(token)


async def get_access_context(identity: Identity = Depends(get_identity)) -> AccessContext:
    """Authenticated caller with no resource decision attached."""
    return AccessContext(identity=identity)


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

_DENIAL_MESSAGES = {
    DenialReason.INSUFFICIENT_ROLE: "Insufficient permissions",
    DenialReason.NO_ACCESS: "Access denied",
    DenialReason.MISSING_PERMISSION: "Insufficient permissions",
    DenialReason.RESOLUTION_FAILED: "Insufficient permissions",
}


def admit(identity: Identity, decision: AccessDecision) -> AccessContext:
    """Turn a decision into a context, or a 403 when it denies."""
    if not decision.granted:
        raise HTTPException(status_code=403, detail=_DENIAL_MESSAGES[decision.reason])
    return AccessContext(identity=identity, decision=decision)


def _path_uuid(request: Request, name: str) -> uuid.UUID:
    raw = request.path_params.get(name)
    if raw is None:
        raise InputError(f"Missing path parameter '{name}'")
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise InputError(f"Invalid {name}") from None


def require_permission(permission: str, scope_param: Optional[str] = None) -> Callable:
    """Require a permission string, optionally scoped to the app id in ``scope_param``."""

    async def dependency(
        request: Request,
        identity: Identity = Depends(get_identity),
        store: RowStore = Depends(get_store),
    ) -> AccessContext:
        scope = _path_uuid(request, scope_param) if scope_param else None
        decision = await strategy_for("legacy").decide(
            identity.id, PermissionTarget(permission, scope), store
        )
        return admit(identity, decision)

    return dependency


def require_app_role(*roles: RoleLike, param: str = "appId") -> Callable:
    """Require one of ``roles`` on the app in path parameter ``param``."""
    required = normalize_roles(roles) if roles else None

    async def dependency(
        request: Request,
        identity: Identity = Depends(get_identity),
        store: RowStore = Depends(get_store),
    ) -> AccessContext:
        app_id = _path_uuid(request, param)
        decision = await check_resource_access(identity.id, app_id, required, store)
        return admit(identity, decision)

    return dependency


def require_org_role(*roles: RoleLike, param: str = "orgId") -> Callable:
    """Require membership (with one of ``roles`` when given) in the org in ``param``."""
    required = normalize_roles(roles) if roles else None

    async def dependency(
        request: Request,
        identity: Identity = Depends(get_identity),
        store: RowStore = Depends(get_store),
    ) -> AccessContext:
        org_id = _path_uuid(request, param)
        decision = await check_org_membership(identity.id, org_id, required, store)
        return admit(identity, decision)

    return dependency


require_app_admin = require_app_role(*APP_ADMIN)
require_app_developer = require_app_role(*APP_DEVELOPER)
require_app_viewer = require_app_role(*APP_VIEWER)

require_org_member = require_org_role()
require_org_admin = require_org_role(*ORG_ADMIN)
require_org_owner = require_org_role(*ORG_OWNER)
