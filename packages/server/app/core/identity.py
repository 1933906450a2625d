"""
Identity Resolver: bearer credential -> verified ``Identity``.

Read-only. A token the provider accepts always yields an identity, even when
no local profile row exists yet (the identity is then synthesized from the
provider's claims).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

import structlog
from pydantic import BaseModel

from app.core.errors import (
    IdentityProviderError,
    InvalidCredential,
    MalformedCredential,
    TokenVerificationError,
)
from app.core.identity_provider import IdentityProvider, VerifiedToken
from app.core.store import RowStore
from app.models.user import User

log = structlog.get_logger()

BEARER_PREFIX = "Bearer "


class Identity(BaseModel):
    id: uuid.UUID
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True
    is_verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    source: Literal["profile", "claims", "session"] = "profile"

    @classmethod
    def from_user(cls, user: User, *, source: str = "profile") -> "Identity":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=user.phone,
            is_active=user.is_active,
            is_verified=user.is_verified,
            created_at=user.created_at,
            updated_at=user.updated_at,
            source=source,
        )

    @classmethod
    def from_claims(cls, subject_id: uuid.UUID, verified: VerifiedToken) -> "Identity":
        claims = verified.claims
        metadata: dict[str, Any] = claims.get("user_metadata") or {}
        return cls(
            id=subject_id,
            email=verified.email or claims.get("email"),
            first_name=metadata.get("first_name"),
            last_name=metadata.get("last_name"),
            phone=claims.get("phone") or None,
            is_active=True,
            is_verified=bool(claims.get("email_confirmed_at")),
            created_at=claims.get("created_at"),
            updated_at=claims.get("updated_at"),
            source="claims",
        )


def parse_bearer(header: Optional[str]) -> str:
    """Extract the token from ``Bearer <token>``. Raises MalformedCredential."""
    if not header or not header.startswith(BEARER_PREFIX):
        raise MalformedCredential("Missing or invalid authorization header")
    token = header[len(BEARER_PREFIX):].strip()
    if not token or " " in token:
        raise MalformedCredential("Missing or invalid authorization header")
    return token


class IdentityResolver:
    def __init__(self, provider: IdentityProvider, store: RowStore):
        self._provider = provider
        self._store = store

    async def resolve(self, authorization: Optional[str]) -> Identity:
        token = parse_bearer(authorization)
        return await self.resolve_token(token)

    async def resolve_token(self, token: str) -> Identity:
        try:
            verified = await self._provider.verify_token(token)
        except TokenVerificationError as exc:
            log.info("identity.invalid_credential", reason=str(exc))
            raise InvalidCredential("Invalid or expired token") from exc
        except IdentityProviderError as exc:
            log.warning("identity.provider_error", error=exc.message)
            raise InvalidCredential("Invalid or expired token") from exc

        try:
            subject_id = uuid.UUID(verified.subject_id)
        except ValueError as exc:
            log.warning("identity.bad_subject", subject=verified.subject_id)
            raise InvalidCredential("Invalid or expired token") from exc

        profile = await self._store.select_one(User, id=subject_id)
        if profile is not None:
            return Identity.from_user(profile)

        log.debug("identity.profile_missing", user_id=str(subject_id))
        return Identity.from_claims(subject_id, verified)
