"""
Tests for identity resolution and the identity provider clients.

Covers:
- Bearer header parsing
- Profile lookup and claims fallback
- Provider rejection, outage or unreadable reply -> InvalidCredential
- GoTrue client over a mocked HTTP transport
- Offline JWT verification with the Redis revocation list
"""

from __future__ import annotations

import json
import time
import uuid
from unittest.mock import AsyncMock

import httpx
import jwt
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.errors import (
    IdentityProviderError,
    InvalidCredential,
    MalformedCredential,
    StoreError,
    TokenVerificationError,
)
from app.core.identity import IdentityResolver, parse_bearer
from app.core.identity_provider import (
    GoTrueIdentityProvider,
    JWTIdentityProvider,
    VerifiedToken,
)
from app.models.user import User

SECRET = "test-secret"


# ---------------------------------------------------------------------------
# Header parsing
# ---------------------------------------------------------------------------

class TestParseBearer:
    def test_valid(self):
        assert parse_bearer("Bearer abc.def") == "abc.def"

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer ", "Bearer a b", "bearer abc"])
    def test_malformed(self, header):
        with pytest.raises(MalformedCredential):
            parse_bearer(header)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class TestIdentityResolver:
    @pytest.mark.asyncio
    async def test_profile_found(self, store, seed, provider):
        user = await seed.user("alice@example.com", first_name="Alice", is_verified=True)
        token = provider.issue(user.id, "alice@example.com")

        identity = await IdentityResolver(provider, store).resolve(f"Bearer {token}")

        assert identity.id == user.id
        assert identity.first_name == "Alice"
        assert identity.is_verified is True
        assert identity.source == "profile"

    @pytest.mark.asyncio
    async def test_claims_fallback_without_profile(self, store, provider):
        user_id = uuid.uuid4()
        token = provider.issue(
            user_id,
            "new@example.com",
            user_metadata={"first_name": "New", "last_name": "User"},
            email_confirmed_at="2026-01-01T00:00:00Z",
        )

        identity = await IdentityResolver(provider, store).resolve(f"Bearer {token}")

        assert identity.id == user_id
        assert identity.email == "new@example.com"
        assert identity.first_name == "New"
        assert identity.last_name == "User"
        assert identity.is_active is True
        assert identity.is_verified is True
        assert identity.source == "claims"

    @pytest.mark.asyncio
    async def test_claims_fallback_unverified(self, store, provider):
        token = provider.issue(uuid.uuid4(), "x@example.com")
        identity = await IdentityResolver(provider, store).resolve_token(token)
        assert identity.is_verified is False

    @pytest.mark.asyncio
    async def test_rejected_token(self, store, provider):
        with pytest.raises(InvalidCredential):
            await IdentityResolver(provider, store).resolve("Bearer nope")

    @pytest.mark.asyncio
    async def test_provider_outage_is_invalid_credential(self, store):
        provider = AsyncMock()
        provider.verify_token = AsyncMock(side_effect=IdentityProviderError("down"))
        with pytest.raises(InvalidCredential):
            await IdentityResolver(provider, store).resolve("Bearer abc")

    @pytest.mark.asyncio
    async def test_non_uuid_subject(self, store):
        provider = AsyncMock()
        provider.verify_token = AsyncMock(return_value=VerifiedToken("not-a-uuid", None, {}))
        with pytest.raises(InvalidCredential):
            await IdentityResolver(provider, store).resolve("Bearer abc")

    @pytest.mark.asyncio
    async def test_missing_header(self, store, provider):
        with pytest.raises(MalformedCredential):
            await IdentityResolver(provider, store).resolve(None)

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, flaky_store, provider):
        flaky_store.fail("select", User)
        token = provider.issue(uuid.uuid4())
        with pytest.raises(StoreError):
            await IdentityResolver(provider, flaky_store).resolve_token(token)


# ---------------------------------------------------------------------------
# GoTrue client
# ---------------------------------------------------------------------------

def _gotrue(handler) -> GoTrueIdentityProvider:
    return GoTrueIdentityProvider(
        "http://auth.test", "anon-key", transport=httpx.MockTransport(handler)
    )


class TestGoTrueProvider:
    @pytest.mark.asyncio
    async def test_verify_token(self):
        user_id = str(uuid.uuid4())

        def handler(request: httpx.Request):
            assert request.url.path == "/auth/v1/user"
            assert request.headers["Authorization"] == "Bearer good"
            assert request.headers["apikey"] == "anon-key"
            return httpx.Response(200, json={"id": user_id, "email": "a@example.com"})

        verified = await _gotrue(handler).verify_token("good")
        assert verified.subject_id == user_id
        assert verified.email == "a@example.com"

    @pytest.mark.asyncio
    async def test_verify_rejected(self):
        provider = _gotrue(lambda request: httpx.Response(401, json={"msg": "invalid JWT"}))
        with pytest.raises(TokenVerificationError):
            await provider.verify_token("bad")

    @pytest.mark.asyncio
    async def test_verify_unreadable_body(self):
        provider = _gotrue(lambda request: httpx.Response(200, text="<html>gateway</html>"))
        with pytest.raises(TokenVerificationError):
            await provider.verify_token("abc")

    @pytest.mark.asyncio
    async def test_unreadable_body_resolves_to_invalid_credential(self, store):
        provider = _gotrue(lambda request: httpx.Response(200, text="<html>gateway</html>"))
        with pytest.raises(InvalidCredential):
            await IdentityResolver(provider, store).resolve("Bearer abc")

    @pytest.mark.asyncio
    async def test_verify_non_object_body(self):
        provider = _gotrue(lambda request: httpx.Response(200, json=["not", "a", "user"]))
        with pytest.raises(TokenVerificationError):
            await provider.verify_token("abc")

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(IdentityProviderError):
            await _gotrue(handler).verify_token("any")

    @pytest.mark.asyncio
    async def test_sign_in(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/auth/v1/token"
            assert request.url.params["grant_type"] == "password"
            return httpx.Response(
                200,
                json={
                    "access_token": "at",
                    "refresh_token": "rt",
                    "expires_in": 3600,
                    "user": {"id": str(uuid.uuid4()), "email": "a@example.com"},
                },
            )

        session = await _gotrue(handler).sign_in("a@example.com", "pw")
        assert session.access_token == "at"
        assert session.user["email"] == "a@example.com"

    @pytest.mark.asyncio
    async def test_sign_in_bad_password(self):
        provider = _gotrue(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
        with pytest.raises(InvalidCredential):
            await provider.sign_in("a@example.com", "wrong")

    @pytest.mark.asyncio
    async def test_sign_in_unreadable_session(self):
        provider = _gotrue(lambda request: httpx.Response(200, text="ok"))
        with pytest.raises(IdentityProviderError):
            await provider.sign_in("a@example.com", "pw")
        with pytest.raises(IdentityProviderError):
            await provider.refresh_session("rt")

    @pytest.mark.asyncio
    async def test_refresh_session(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/auth/v1/token"
            assert request.url.params["grant_type"] == "refresh_token"
            assert json.loads(request.content) == {"refresh_token": "rt-1"}
            return httpx.Response(
                200,
                json={
                    "access_token": "at-2",
                    "refresh_token": "rt-2",
                    "expires_in": 3600,
                    "user": {"id": str(uuid.uuid4()), "email": "a@example.com"},
                },
            )

        session = await _gotrue(handler).refresh_session("rt-1")
        assert session.access_token == "at-2"
        assert session.refresh_token == "rt-2"

    @pytest.mark.asyncio
    async def test_refresh_rejected(self):
        provider = _gotrue(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
        with pytest.raises(InvalidCredential):
            await provider.refresh_session("stale")

    @pytest.mark.asyncio
    async def test_sign_up_error_message(self):
        provider = _gotrue(lambda request: httpx.Response(422, json={"msg": "User already registered"}))
        with pytest.raises(IdentityProviderError, match="already registered"):
            await provider.sign_up("a@example.com", "password1")

    @pytest.mark.asyncio
    async def test_password_reset(self):
        assert await _gotrue(lambda r: httpx.Response(200, json={})).request_password_reset("a@example.com")
        assert not await _gotrue(lambda r: httpx.Response(429, json={})).request_password_reset("a@example.com")


# ---------------------------------------------------------------------------
# JWT provider
# ---------------------------------------------------------------------------

def _token(sub: str, *, exp_in: int = 3600, jti: str = "jti-1", **extra) -> str:
    payload = {"sub": sub, "exp": int(time.time()) + exp_in, "aud": "authenticated", "jti": jti, **extra}
    return jwt.encode(payload, SECRET, algorithm="HS256")


def _jwt_provider(mock_redis) -> JWTIdentityProvider:
    async def getter():
        return mock_redis

    return JWTIdentityProvider(SECRET, redis_getter=getter)


class TestJWTProvider:
    @pytest.mark.asyncio
    async def test_valid_token(self):
        mock_redis = AsyncMock()
        mock_redis.exists = AsyncMock(return_value=0)
        sub = str(uuid.uuid4())

        verified = await _jwt_provider(mock_redis).verify_token(_token(sub, email="j@example.com"))

        assert verified.subject_id == sub
        assert verified.email == "j@example.com"
        mock_redis.exists.assert_awaited_once_with("jwt:revoked:jti-1")

    @pytest.mark.asyncio
    async def test_expired_token(self):
        with pytest.raises(TokenVerificationError):
            await _jwt_provider(AsyncMock()).verify_token(_token("x", exp_in=-10))

    @pytest.mark.asyncio
    async def test_wrong_secret(self):
        token = jwt.encode({"sub": "x", "exp": int(time.time()) + 60, "aud": "authenticated"}, "other", algorithm="HS256")
        with pytest.raises(TokenVerificationError):
            await _jwt_provider(AsyncMock()).verify_token(token)

    @pytest.mark.asyncio
    async def test_revoked_token(self):
        mock_redis = AsyncMock()
        mock_redis.exists = AsyncMock(return_value=1)
        with pytest.raises(TokenVerificationError):
            await _jwt_provider(mock_redis).verify_token(_token("x"))

    @pytest.mark.asyncio
    async def test_redis_down(self):
        mock_redis = AsyncMock()
        mock_redis.exists = AsyncMock(side_effect=RedisConnectionError("down"))
        with pytest.raises(IdentityProviderError):
            await _jwt_provider(mock_redis).verify_token(_token("x"))

    @pytest.mark.asyncio
    async def test_revoke_sets_ttl(self):
        mock_redis = AsyncMock()
        mock_redis.setex = AsyncMock()

        await _jwt_provider(mock_redis).revoke(_token("x", exp_in=600, jti="abc"))

        key, ttl, value = mock_redis.setex.await_args.args
        assert key == "jwt:revoked:abc"
        assert 0 < ttl <= 600
        assert value == "1"

    @pytest.mark.asyncio
    async def test_password_flows_without_remote(self):
        provider = _jwt_provider(AsyncMock())
        assert await provider.request_password_reset("a@example.com") is False
        with pytest.raises(IdentityProviderError):
            await provider.sign_in("a@example.com", "pw")
        with pytest.raises(IdentityProviderError):
            await provider.refresh_session("rt")

    @pytest.mark.asyncio
    async def test_revoke_malformed_token(self):
        with pytest.raises(TokenVerificationError):
            await _jwt_provider(AsyncMock()).revoke("not-a-jwt")
