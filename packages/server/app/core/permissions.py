"""
Permission Resolver: a user's effective permission-string set.

Aggregates every role reachable through the user's team memberships, filtered
by scope:

- ``scope=None``: only system-wide roles (``app_id IS NULL``)
- ``scope=<app id>``: only roles scoped to that app

No memberships means no permissions. A role lookup that fails contributes
nothing; a failure to fetch the memberships themselves raises
``PermissionResolutionError`` so the caller denies.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Optional

import structlog

from app.core.errors import PermissionResolutionError, StoreError
from app.core.store import RowStore
from app.models.role import Role
from app.models.team_membership import TeamMembership

log = structlog.get_logger()


def _role_in_scope(role: Role, scope: Optional[uuid.UUID]) -> bool:
    """System-wide roles apply to unscoped checks, app roles only to their own app."""
    if scope is None:
        return role.app_id is None
    return role.app_id == scope


async def resolve_permissions(
    user_id: uuid.UUID,
    scope: Optional[uuid.UUID],
    store: RowStore,
) -> frozenset[str]:
    try:
        memberships = await store.select(TeamMembership, user_id=user_id)
    except StoreError as exc:
        log.error("permissions.membership_fetch_failed", user_id=str(user_id))
        raise PermissionResolutionError("Could not load memberships") from exc

    if not memberships:
        log.debug("permissions.no_memberships", user_id=str(user_id))
        return frozenset()

    role_ids = list(dict.fromkeys(m.role_id for m in memberships))
    results = await asyncio.gather(
        *(store.select_one(Role, id=role_id) for role_id in role_ids),
        return_exceptions=True,
    )

    permissions: set[str] = set()
    for role_id, result in zip(role_ids, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            log.warning(
                "permissions.role_fetch_failed",
                user_id=str(user_id),
                role_id=str(role_id),
                error=repr(result),
            )
            continue
        if result is None or not _role_in_scope(result, scope):
            continue
        permissions.update(result.permissions or [])

    return frozenset(permissions)
