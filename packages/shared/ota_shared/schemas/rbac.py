"""
Legacy permission-string RBAC: the permission catalog plus team and role schemas.

Permission strings have the form ``<category>:<resource>`` (e.g. ``read:app``).
``<category>:*`` grants every permission in a category and ``*`` grants everything.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Permission catalog
# ---------------------------------------------------------------------------

GLOBAL_WILDCARD = "*"

PERMISSION_CATALOG: tuple[str, ...] = (
    "read:app",
    "write:app",
    "manage:app",
    "manage:apps",
    "read:updates",
    "write:updates",
    "manage:updates",
    "read:channels",
    "write:channels",
    "manage:channels",
    "read:stats",
    "write:stats",
    "manage:stats",
    "read:devices",
    "write:devices",
    "manage:devices",
    "read:roles",
    "manage:users",
    "manage:roles",
    "manage:teams",
)

PERMISSION_CATEGORIES: frozenset[str] = frozenset(
    p.split(":", 1)[0] for p in PERMISSION_CATALOG
)


def category_of(permission: str) -> str:
    """Category of a permission string: everything before the first ``:``.

    A string without ``:`` is its own category.
    """
    return permission.split(":", 1)[0]


def is_known_permission(permission: str) -> bool:
    if permission == GLOBAL_WILDCARD or permission in PERMISSION_CATALOG:
        return True
    category, sep, rest = permission.partition(":")
    return bool(sep) and rest == "*" and category in PERMISSION_CATEGORIES


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class TeamCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    app_id: uuid.UUID
    description: Optional[str] = Field(default=None, max_length=2000)


class TeamMemberAddRequest(BaseModel):
    user_id: uuid.UUID
    team_id: uuid.UUID
    role_id: uuid.UUID


class RoleCreateRequest(BaseModel):
    """Create a role. ``app_id=None`` makes it system-wide."""
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    app_id: Optional[uuid.UUID] = None
    permissions: list[str] = Field(min_length=1)

    @field_validator("permissions")
    @classmethod
    def _known_permissions(cls, value: list[str]) -> list[str]:
        normalized = [p.strip() for p in value]
        unknown = sorted({p for p in normalized if not is_known_permission(p)})
        if unknown:
            raise ValueError(f"Unknown permissions: {unknown}")
        # Preserve first-seen order, drop duplicates
        return list(dict.fromkeys(normalized))


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class TeamResponse(BaseModel):
    id: uuid.UUID
    name: str
    app_id: uuid.UUID
    description: Optional[str] = None
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class TeamMembershipResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    team_id: uuid.UUID
    role_id: uuid.UUID
    joined_at: datetime


class RoleResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    app_id: Optional[uuid.UUID] = None
    permissions: list[str]
    created_at: datetime
    updated_at: datetime


class RoleListResponse(BaseModel):
    data: list[RoleResponse]


class PermissionSetResponse(BaseModel):
    user_id: uuid.UUID
    scope: Optional[uuid.UUID] = None
    permissions: list[str]
