"""
Authentication endpoints.

- Registration, login, token refresh, logout and password reset through the identity provider
- Current-user profile
- Legacy direct sessions (local bcrypt password -> opaque session token)
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response

from app.core.auth import get_bearer_token, get_identity, get_session_ledger
from app.core.errors import InputError, InvalidCredential, TokenVerificationError, Unauthenticated
from app.core.identity import Identity
from app.core.identity_provider import IdentityProvider, ProviderSession, get_identity_provider
from app.core.sessions import SessionLedger, is_session_token
from app.core.store import RowStore, get_store
from app.models.user import User
from app.services import users as user_service
from ota_shared.schemas.users import (
    AuthResponse,
    LoginRequest,
    PasswordResetRequest,
    RefreshRequest,
    RegisterRequest,
    SessionInfoResponse,
    SessionResponse,
    UserResponse,
)

log = structlog.get_logger()
router = APIRouter()


def _user_response(user: User) -> UserResponse:
    return UserResponse.model_validate(user, from_attributes=True)


def _auth_response(user: User, session: ProviderSession) -> AuthResponse:
    return AuthResponse(
        user=_user_response(user),
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in,
    )


# ---------------------------------------------------------------------------
# Identity provider flows
# ---------------------------------------------------------------------------

@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    provider: IdentityProvider = Depends(get_identity_provider),
    store: RowStore = Depends(get_store),
):
    """Create a provider account and its local profile."""
    metadata = {"first_name": body.first_name, "last_name": body.last_name}
    session = await provider.sign_up(str(body.email), body.password, metadata)
    user = await user_service.ensure_profile(session.user, store)
    log.info("auth.registered", user_id=str(user.id))
    return _auth_response(user, session)


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    provider: IdentityProvider = Depends(get_identity_provider),
    store: RowStore = Depends(get_store),
):
    """Password login through the identity provider."""
    session = await provider.sign_in(str(body.email), body.password)
    user = await user_service.ensure_profile(session.user, store)
    if not user.is_active:
        log.info("auth.login_inactive", user_id=str(user.id))
        raise Unauthenticated("Account is disabled")
    log.info("auth.login", user_id=str(user.id))
    return _auth_response(user, session)


@router.post("/logout", status_code=204)
async def logout(
    token: str = Depends(get_bearer_token),
    provider: IdentityProvider = Depends(get_identity_provider),
    ledger: SessionLedger = Depends(get_session_ledger),
):
    """Invalidate the presented credential (provider token or legacy session)."""
    if is_session_token(token):
        await ledger.close(token)
    else:
        try:
            await provider.revoke(token)
        except TokenVerificationError as exc:
            log.info("auth.logout_rejected", reason=str(exc))
            raise InvalidCredential("Invalid or expired token") from exc
    log.info("auth.logout")
    return Response(status_code=204)


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    body: RefreshRequest,
    provider: IdentityProvider = Depends(get_identity_provider),
    store: RowStore = Depends(get_store),
):
    """Exchange a refresh token for a new provider session."""
    session = await provider.refresh_session(body.refresh_token)
    user = await user_service.ensure_profile(session.user, store)
    if not user.is_active:
        log.info("auth.refresh_inactive", user_id=str(user.id))
        raise Unauthenticated("Account is disabled")
    log.info("auth.refreshed", user_id=str(user.id))
    return _auth_response(user, session)


@router.get("/session", response_model=SessionInfoResponse)
async def session_info(identity: Identity = Depends(get_identity)):
    """Whether the presented credential is live, and whose it is."""
    return SessionInfoResponse(
        authenticated=True,
        source=identity.source,
        user=UserResponse.model_validate(identity.model_dump()),
    )


@router.post("/password-reset")
async def password_reset(
    body: PasswordResetRequest,
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Request a reset email. The response never reveals whether the account exists."""
    sent = await provider.request_password_reset(str(body.email))
    if not sent:
        log.warning("auth.password_reset_not_sent")
    return {"message": "If the account exists, a password reset email has been sent"}


@router.get("/me", response_model=UserResponse)
async def me(identity: Identity = Depends(get_identity)):
    """Current caller's profile."""
    return UserResponse.model_validate(identity.model_dump())


# ---------------------------------------------------------------------------
# Legacy direct sessions
# ---------------------------------------------------------------------------

@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def open_session(
    body: LoginRequest,
    ledger: SessionLedger = Depends(get_session_ledger),
    store: RowStore = Depends(get_store),
):
    """Log in with the local password and receive an opaque session token."""
    user = await user_service.authenticate_password(str(body.email), body.password, store)
    session = await ledger.open(user.id)
    return SessionResponse(
        token=session.token, expires_at=session.expires_at, user=_user_response(user)
    )


@router.delete("/sessions", status_code=204)
async def close_session(
    token: str = Depends(get_bearer_token),
    ledger: SessionLedger = Depends(get_session_ledger),
):
    if not is_session_token(token):
        raise InputError("Not a session token")
    await ledger.close(token)
    return Response(status_code=204)
