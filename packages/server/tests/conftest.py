"""
Shared fixtures: a SQLite-backed row store, a fake identity provider, seed
helpers and an HTTP client wired to both.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.database import build_engine, build_session_factory, init_db
from app.core.errors import InvalidCredential, StoreError, TokenVerificationError
from app.core.identity_provider import (
    IdentityProvider,
    ProviderSession,
    VerifiedToken,
    get_identity_provider,
)
from app.core.store import RowStore, SQLRowStore, get_store
from app.main import app as fastapi_app
from app.models.app import App
from app.models.app_permission import AppPermission
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.role import Role
from app.models.team import Team
from app.models.team_membership import TeamMembership
from app.models.user import User


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ota.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(engine) -> SQLRowStore:
    return SQLRowStore(build_session_factory(engine), timeout=5)


class FlakyStore(RowStore):
    """Delegates to a real store, failing chosen (operation, model) pairs."""

    def __init__(self, inner: RowStore):
        self.inner = inner
        self.failures: set[tuple[str, type]] = set()
        self.calls: list[tuple[str, type]] = []

    def fail(self, op: str, model: type) -> "FlakyStore":
        self.failures.add((op, model))
        return self

    def _check(self, op: str, model: type) -> None:
        self.calls.append((op, model))
        if (op, model) in self.failures:
            raise StoreError(f"{op} on {model.__tablename__} failed")

    async def select(self, model, *, in_=None, limit=None, **equals):
        self._check("select", model)
        return await self.inner.select(model, in_=in_, limit=limit, **equals)

    async def insert(self, row):
        self._check("insert", type(row))
        return await self.inner.insert(row)

    async def update(self, model, patch, **equals):
        self._check("update", model)
        return await self.inner.update(model, patch, **equals)

    async def delete(self, model, *, lt_=None, **equals):
        self._check("delete", model)
        return await self.inner.delete(model, lt_=lt_, **equals)

    async def upsert(self, model, values, conflict_keys):
        self._check("upsert", model)
        return await self.inner.upsert(model, values, conflict_keys)


@pytest.fixture
def flaky_store(store) -> FlakyStore:
    return FlakyStore(store)


# ---------------------------------------------------------------------------
# Identity provider
# ---------------------------------------------------------------------------

class FakeIdentityProvider(IdentityProvider):
    def __init__(self):
        self.tokens: dict[str, VerifiedToken] = {}
        self.revoked: list[str] = []
        self.reset_requests: list[str] = []
        self.accounts: dict[str, tuple[str, dict[str, Any]]] = {}
        self.refresh_tokens: dict[str, dict[str, Any]] = {}

    def issue(self, user_id: uuid.UUID, email: str = "user@example.com", **claims) -> str:
        token = f"tok-{uuid.uuid4().hex}"
        self.tokens[token] = VerifiedToken(
            subject_id=str(user_id), email=email, claims={"id": str(user_id), "email": email, **claims}
        )
        return token

    async def verify_token(self, token: str) -> VerifiedToken:
        if token not in self.tokens:
            raise TokenVerificationError("unknown token")
        return self.tokens[token]

    async def revoke(self, token: str) -> None:
        self.revoked.append(token)
        self.tokens.pop(token, None)

    async def request_password_reset(self, email: str) -> bool:
        self.reset_requests.append(email)
        return True

    async def sign_up(self, email, password, metadata=None):
        user = {
            "id": str(uuid.uuid4()),
            "email": email,
            "user_metadata": metadata or {},
            "email_confirmed_at": None,
        }
        self.accounts[email] = (password, user)
        return self._session(user)

    async def sign_in(self, email, password):
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise InvalidCredential("Invalid email or password")
        user = account[1]
        return self._session(user)

    async def refresh_session(self, refresh_token):
        user = self.refresh_tokens.pop(refresh_token, None)
        if user is None:
            raise InvalidCredential("Invalid or expired refresh token")
        return self._session(user)

    def _session(self, user: dict[str, Any]) -> ProviderSession:
        token = self.issue(uuid.UUID(user["id"]), user["email"])
        refresh_token = f"rt-{uuid.uuid4().hex}"
        self.refresh_tokens[refresh_token] = user
        return ProviderSession(user=user, access_token=token, refresh_token=refresh_token, expires_in=3600)


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

class Seed:
    def __init__(self, store: RowStore):
        self.store = store

    async def user(self, email: Optional[str] = None, **kwargs) -> User:
        email = email or f"{uuid.uuid4().hex[:8]}@example.com"
        return await self.store.insert(User(email=email, **kwargs))

    async def org(self, name: str = "Acme", owner: Optional[uuid.UUID] = None) -> Organization:
        org = await self.store.insert(Organization(name=name))
        if owner is not None:
            await self.member(org.id, owner, "owner")
        return org

    async def member(self, org_id: uuid.UUID, user_id: uuid.UUID, role: str) -> OrganizationMember:
        return await self.store.insert(
            OrganizationMember(organization_id=org_id, user_id=user_id, role=role)
        )

    async def app(self, org_id: uuid.UUID, name: Optional[str] = None, platform: str = "ios") -> App:
        name = name or f"App {uuid.uuid4().hex[:6]}"
        identifier = "com." + name.lower().replace(" ", "-")
        return await self.store.insert(
            App(app_id=identifier, name=name, platform=platform, organization_id=org_id)
        )

    async def grant(self, app_id: uuid.UUID, user_id: uuid.UUID, role: str) -> AppPermission:
        return await self.store.insert(AppPermission(app_id=app_id, user_id=user_id, role=role))

    async def role(self, permissions: list[str], app_id: Optional[uuid.UUID] = None, name: str = "Role") -> Role:
        return await self.store.insert(Role(name=name, app_id=app_id, permissions=permissions))

    async def team_role(
        self,
        user_id: uuid.UUID,
        permissions: list[str],
        *,
        team_app_id: uuid.UUID,
        role_app_id: Optional[uuid.UUID] = None,
    ) -> Role:
        """Put ``user_id`` on a fresh team holding a fresh role with ``permissions``."""
        team = await self.store.insert(Team(name=f"team-{uuid.uuid4().hex[:6]}", app_id=team_app_id))
        role = await self.role(permissions, app_id=role_app_id)
        await self.store.insert(TeamMembership(user_id=user_id, team_id=team.id, role_id=role.id))
        return role


@pytest.fixture
def seed(store) -> Seed:
    return Seed(store)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
async def client(store, provider):
    fastapi_app.dependency_overrides[get_store] = lambda: store
    fastapi_app.dependency_overrides[get_identity_provider] = lambda: provider
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def auth_for(provider):
    """Bearer headers for a user id (provider-issued token)."""

    def _headers(user_id: uuid.UUID, email: str = "user@example.com") -> dict[str, str]:
        return {"Authorization": f"Bearer {provider.issue(user_id, email)}"}

    return _headers
