"""
Session Ledger: opaque session tokens for the legacy direct-session login path.

Expiry is checked on every lookup; an expired row is deleted on sight (best
effort) and the token is treated as unauthenticated whether or not the delete
succeeds. ``last_accessed`` is refreshed on every successful lookup, also best
effort.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from app.core.errors import StoreError
from app.core.identity import Identity
from app.core.store import RowStore
from app.models.user import User
from app.models.user_session import UserSession

log = structlog.get_logger()

SESSION_TOKEN_PREFIX = "ota_st_"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_session_token(token: str) -> bool:
    return token.startswith(SESSION_TOKEN_PREFIX)


class SessionLedger:
    def __init__(self, store: RowStore, *, ttl: timedelta = timedelta(hours=24)):
        self._store = store
        self._ttl = ttl

    async def authenticate(self, token: str) -> Optional[Identity]:
        session = await self._store.select_one(UserSession, token=token)
        if session is None:
            return None

        now = datetime.now(timezone.utc)
        if _as_utc(session.expires_at) < now:
            try:
                await self._store.delete(UserSession, id=session.id)
            except StoreError:
                log.warning("session.expired_delete_failed", session_id=str(session.id))
            log.info("session.expired", session_id=str(session.id))
            return None

        await self.touch(session.id)

        user = await self._store.select_one(User, id=session.user_id, is_active=True)
        if user is None:
            log.info("session.user_inactive", user_id=str(session.user_id))
            return None
        return Identity.from_user(user, source="session")

    async def touch(self, session_id: uuid.UUID) -> None:
        try:
            await self._store.update(
                UserSession,
                {"last_accessed": datetime.now(timezone.utc)},
                id=session_id,
            )
        except StoreError:
            log.warning("session.touch_failed", session_id=str(session_id))

    async def open(self, user_id: uuid.UUID) -> UserSession:
        now = datetime.now(timezone.utc)
        session = UserSession(
            user_id=user_id,
            token=SESSION_TOKEN_PREFIX + secrets.token_urlsafe(32),
            expires_at=now + self._ttl,
            created_at=now,
            last_accessed=now,
        )
        session = await self._store.insert(session)
        log.info("session.opened", user_id=str(user_id), session_id=str(session.id))
        return session

    async def close(self, token: str) -> bool:
        deleted = await self._store.delete(UserSession, token=token)
        if deleted:
            log.info("session.closed")
        return deleted > 0

    async def purge_expired(self) -> int:
        """Delete every expired session in one statement. Returns the number removed."""
        removed = await self._store.delete(
            UserSession, lt_={"expires_at": datetime.now(timezone.utc)}
        )
        if removed:
            log.info("session.purged", count=removed)
        return removed
