"""
Identity provider clients.

The provider issues bearer tokens and validates passwords; this service only
consumes it. Two strategies:

- ``GoTrueIdentityProvider`` verifies every token remotely (``GET /auth/v1/user``).
- ``JWTIdentityProvider`` verifies the provider's HS256 tokens offline with the
  shared JWT secret, and keeps a Redis revocation list for logged-out tokens.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import httpx
import jwt
import redis.asyncio as redis
from redis.exceptions import RedisError
import structlog

from app.core.config import Settings, get_settings
from app.core.errors import IdentityProviderError, InvalidCredential, TokenVerificationError
from app.core.redis import get_redis

log = structlog.get_logger()


@dataclass(frozen=True)
class VerifiedToken:
    subject_id: str
    email: Optional[str]
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderSession:
    user: dict[str, Any]
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


class IdentityProvider(ABC):
    @abstractmethod
    async def verify_token(self, token: str) -> VerifiedToken:
        """Return the token's subject. Raises TokenVerificationError or IdentityProviderError."""

    @abstractmethod
    async def revoke(self, token: str) -> None:
        ...

    @abstractmethod
    async def request_password_reset(self, email: str) -> bool:
        ...

    async def sign_up(
        self, email: str, password: str, metadata: Optional[dict[str, Any]] = None
    ) -> ProviderSession:
        raise IdentityProviderError("Registration is not supported by this identity provider")

    async def sign_in(self, email: str, password: str) -> ProviderSession:
        raise IdentityProviderError("Password login is not supported by this identity provider")

    async def refresh_session(self, refresh_token: str) -> ProviderSession:
        """Exchange a refresh token for a new provider session."""
        raise IdentityProviderError("Token refresh is not supported by this identity provider")

    async def aclose(self) -> None:
        return None


# ---------------------------------------------------------------------------
# GoTrue (remote)
# ---------------------------------------------------------------------------

class GoTrueIdentityProvider(IdentityProvider):
    """Client for a GoTrue-compatible auth server (Supabase Auth)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"apikey": api_key},
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            log.error("identity.provider_unreachable", path=path, error=repr(exc))
            raise IdentityProviderError(f"Identity provider request failed: {path}") from exc

    async def verify_token(self, token: str) -> VerifiedToken:
        resp = await self._request(
            "GET", "/auth/v1/user", headers={"Authorization": f"Bearer {token}"}
        )
        if resp.status_code != 200:
            raise TokenVerificationError(f"Provider rejected token ({resp.status_code})")
        try:
            user = resp.json()
        except ValueError as exc:
            log.warning("identity.provider_bad_payload", path="/auth/v1/user")
            raise TokenVerificationError("Provider returned an unreadable user") from exc
        if not isinstance(user, dict) or not user.get("id"):
            raise TokenVerificationError("Provider returned no subject")
        return VerifiedToken(subject_id=str(user["id"]), email=user.get("email"), claims=user)

    async def revoke(self, token: str) -> None:
        resp = await self._request(
            "POST", "/auth/v1/logout", headers={"Authorization": f"Bearer {token}"}
        )
        if resp.status_code >= 400 and resp.status_code != 401:
            raise IdentityProviderError(f"Logout failed ({resp.status_code})")

    async def request_password_reset(self, email: str) -> bool:
        try:
            resp = await self._request("POST", "/auth/v1/recover", json={"email": email})
        except IdentityProviderError:
            return False
        if resp.status_code >= 400:
            log.warning("identity.password_reset_rejected", status=resp.status_code)
            return False
        return True

    async def sign_up(self, email, password, metadata=None):
        resp = await self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": metadata or {}},
        )
        if resp.status_code >= 400:
            raise IdentityProviderError(_error_message(resp), code="REGISTRATION_FAILED")
        return _session_from_response(resp)

    async def sign_in(self, email, password):
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if resp.status_code in (400, 401):
            raise InvalidCredential("Invalid email or password")
        if resp.status_code >= 400:
            raise IdentityProviderError(_error_message(resp))
        return _session_from_response(resp)

    async def refresh_session(self, refresh_token):
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        if resp.status_code in (400, 401):
            raise InvalidCredential("Invalid or expired refresh token")
        if resp.status_code >= 400:
            raise IdentityProviderError(_error_message(resp))
        return _session_from_response(resp)

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"Identity provider error ({resp.status_code})"
    return body.get("msg") or body.get("error_description") or body.get("message") or str(body)


def _session_from_response(resp: httpx.Response) -> ProviderSession:
    try:
        payload = resp.json()
    except ValueError as exc:
        raise IdentityProviderError("Identity provider returned an unreadable session") from exc
    if not isinstance(payload, dict):
        raise IdentityProviderError("Identity provider returned an unreadable session")
    # Signup without auto-confirm returns the bare user object
    user = payload.get("user") or payload
    return ProviderSession(
        user=user,
        access_token=payload.get("access_token"),
        refresh_token=payload.get("refresh_token"),
        expires_in=payload.get("expires_in"),
    )


# ---------------------------------------------------------------------------
# Offline JWT verification + Redis revocation list
# ---------------------------------------------------------------------------

def _revocation_key(jti: str) -> str:
    return f"jwt:revoked:{jti}"


class JWTIdentityProvider(IdentityProvider):
    """Verify provider-issued JWTs locally. Password flows go to ``remote`` when set."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        audience: Optional[str] = "authenticated",
        redis_getter: Callable[[], Awaitable[redis.Redis]] = get_redis,
        remote: Optional[IdentityProvider] = None,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience
        self._redis_getter = redis_getter
        self._remote = remote

    def _decode(self, token: str, *, verify_exp: bool = True) -> dict[str, Any]:
        return jwt.decode(
            token,
            self._secret,
            algorithms=[self._algorithm],
            audience=self._audience,
            options={"require": ["sub", "exp"], "verify_exp": verify_exp},
        )

    @staticmethod
    def _token_id(payload: dict[str, Any]) -> Optional[str]:
        return payload.get("jti") or payload.get("session_id")

    async def verify_token(self, token: str) -> VerifiedToken:
        try:
            payload = self._decode(token)
        except jwt.PyJWTError as exc:
            raise TokenVerificationError(str(exc)) from exc

        jti = self._token_id(payload)
        if jti:
            try:
                r = await self._redis_getter()
                revoked = await r.exists(_revocation_key(jti)) > 0
            except RedisError as exc:
                raise IdentityProviderError("Revocation list unavailable") from exc
            if revoked:
                raise TokenVerificationError("Token has been revoked")

        return VerifiedToken(
            subject_id=str(payload["sub"]), email=payload.get("email"), claims=payload
        )

    async def revoke(self, token: str) -> None:
        try:
            payload = self._decode(token, verify_exp=False)
        except jwt.PyJWTError as exc:
            raise TokenVerificationError(str(exc)) from exc

        jti = self._token_id(payload)
        ttl = int(payload["exp"] - time.time())
        if jti and ttl > 0:
            try:
                r = await self._redis_getter()
                await r.setex(_revocation_key(jti), ttl, "1")
            except RedisError as exc:
                raise IdentityProviderError("Revocation list unavailable") from exc
        if self._remote is not None:
            await self._remote.revoke(token)

    async def request_password_reset(self, email: str) -> bool:
        if self._remote is None:
            log.warning("identity.password_reset_unavailable")
            return False
        return await self._remote.request_password_reset(email)

    async def sign_up(self, email, password, metadata=None):
        if self._remote is None:
            return await super().sign_up(email, password, metadata)
        return await self._remote.sign_up(email, password, metadata)

    async def sign_in(self, email, password):
        if self._remote is None:
            return await super().sign_in(email, password)
        return await self._remote.sign_in(email, password)

    async def refresh_session(self, refresh_token):
        if self._remote is None:
            return await super().refresh_session(refresh_token)
        return await self._remote.refresh_session(refresh_token)

    async def aclose(self) -> None:
        if self._remote is not None:
            await self._remote.aclose()


# ---------------------------------------------------------------------------
# Factory / FastAPI dependency
# ---------------------------------------------------------------------------

def build_identity_provider(settings: Settings) -> IdentityProvider:
    remote = None
    if settings.identity_api_key:
        remote = GoTrueIdentityProvider(
            settings.identity_url,
            settings.identity_api_key,
            timeout=settings.identity_timeout_seconds,
        )
    if settings.identity_provider == "jwt":
        return JWTIdentityProvider(
            settings.identity_jwt_secret,
            algorithm=settings.identity_jwt_algorithm,
            audience=settings.identity_jwt_audience or None,
            remote=remote,
        )
    if remote is None:
        remote = GoTrueIdentityProvider(
            settings.identity_url, "", timeout=settings.identity_timeout_seconds
        )
    return remote


_provider: Optional[IdentityProvider] = None


def get_identity_provider() -> IdentityProvider:
    global _provider
    if _provider is None:
        _provider = build_identity_provider(get_settings())
    return _provider


async def close_identity_provider() -> None:
    global _provider
    if _provider is not None:
        await _provider.aclose()
        _provider = None
