"""
Access decisions.

One ``AccessStrategy`` abstraction, one implementation per resource type:

- ``PermissionStrategy`` ("legacy"): permission strings resolved from team roles,
  matched with wildcard precedence (exact, ``<category>:*``, ``*``).
- ``AppRoleStrategy`` ("app"): strict role-set membership on one app. A direct
  grant governs when present; otherwise an owner/admin of the app's organization
  gets the top app role ("admin") and nothing lesser.
- ``OrgRoleStrategy`` ("organization"): membership in one organization.

A denial is a value (``AccessDecision.granted is False``), never an exception.
A missing resource raises ``ResourceNotFound`` before any role is considered.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

import structlog

from app.core.errors import PermissionResolutionError, ResourceNotFound
from app.core.identity import Identity
from app.core.permissions import resolve_permissions
from app.core.store import RowStore
from app.models.app import App
from app.models.app_permission import AppPermission
from app.models.organization_member import OrganizationMember
from ota_shared.schemas.common import ELEVATED_ORG_ROLES, TOP_APP_ROLE, AppRole, OrgRole
from ota_shared.schemas.rbac import GLOBAL_WILDCARD, category_of

log = structlog.get_logger()

RoleLike = Union[str, AppRole, OrgRole]

# Convenience role sets
APP_ADMIN: tuple[str, ...] = (AppRole.ADMIN.value,)
APP_DEVELOPER: tuple[str, ...] = (AppRole.ADMIN.value, AppRole.DEVELOPER.value)
APP_VIEWER: tuple[str, ...] = tuple(r.value for r in AppRole)
ORG_OWNER: tuple[str, ...] = (OrgRole.OWNER.value,)
ORG_ADMIN: tuple[str, ...] = tuple(r.value for r in ELEVATED_ORG_ROLES)


class DenialReason(str, Enum):
    INSUFFICIENT_ROLE = "insufficient_role"
    NO_ACCESS = "no_access"
    MISSING_PERMISSION = "missing_permission"
    RESOLUTION_FAILED = "resolution_failed"


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    reason: Optional[DenialReason] = None
    effective_role: Optional[str] = None
    via: Optional[str] = None  # direct | organization | membership | permission
    resource_id: Optional[uuid.UUID] = None
    organization_id: Optional[uuid.UUID] = None
    org_role: Optional[str] = None
    permission: Optional[str] = None
    required_roles: Optional[tuple[str, ...]] = None

    @classmethod
    def allowed(cls, **kwargs: Any) -> "AccessDecision":
        return cls(granted=True, **kwargs)

    @classmethod
    def denied(cls, reason: DenialReason, **kwargs: Any) -> "AccessDecision":
        return cls(granted=False, reason=reason, **kwargs)


@dataclass(frozen=True)
class AccessContext:
    """Resolved identity plus the decision that admitted it, handed to route handlers."""

    identity: Identity
    decision: Optional[AccessDecision] = None

    @property
    def user_id(self) -> uuid.UUID:
        return self.identity.id

    @property
    def role(self) -> Optional[str]:
        return self.decision.effective_role if self.decision else None

    @property
    def org_role(self) -> Optional[str]:
        return self.decision.org_role if self.decision else None

    @property
    def resource_id(self) -> Optional[uuid.UUID]:
        return self.decision.resource_id if self.decision else None

    @property
    def organization_id(self) -> Optional[uuid.UUID]:
        return self.decision.organization_id if self.decision else None


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PermissionTarget:
    permission: str
    scope: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class AppTarget:
    app_id: uuid.UUID
    required_roles: Optional[tuple[str, ...]] = None


@dataclass(frozen=True)
class OrgTarget:
    organization_id: uuid.UUID
    required_roles: Optional[tuple[str, ...]] = None


def normalize_roles(roles: Optional[Iterable[RoleLike]]) -> Optional[tuple[str, ...]]:
    """Enum or string roles as plain strings; None means any role."""
    if roles is None:
        return None
    return tuple(r.value if isinstance(r, Enum) else str(r) for r in roles)


# ---------------------------------------------------------------------------
# Wildcard matching
# ---------------------------------------------------------------------------

def permission_matches(granted: Iterable[str], permission: str) -> bool:
    """First match wins: exact, category wildcard, global wildcard."""
    granted = granted if isinstance(granted, (set, frozenset)) else set(granted)
    if permission in granted:
        return True
    if f"{category_of(permission)}:*" in granted:
        return True
    return GLOBAL_WILDCARD in granted


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

class AccessStrategy(ABC):
    """Decides access to one kind of resource. Denials come back as values."""

    resource_type: str

    @abstractmethod
    async def decide(self, user_id: uuid.UUID, target: Any, store: RowStore) -> AccessDecision:
        ...


class PermissionStrategy(AccessStrategy):
    """Permission strings from team roles, optionally scoped to one app."""

    resource_type = "legacy"

    async def decide(
        self, user_id: uuid.UUID, target: PermissionTarget, store: RowStore
    ) -> AccessDecision:
        try:
            granted = await resolve_permissions(user_id, target.scope, store)
        except PermissionResolutionError:
            log.warning(
                "access.resolution_failed",
                user_id=str(user_id),
                permission=target.permission,
                scope=str(target.scope) if target.scope else None,
            )
            return AccessDecision.denied(
                DenialReason.RESOLUTION_FAILED,
                permission=target.permission,
                resource_id=target.scope,
            )

        if permission_matches(granted, target.permission):
            return AccessDecision.allowed(
                via="permission", permission=target.permission, resource_id=target.scope
            )

        log.info(
            "access.denied",
            user_id=str(user_id),
            permission=target.permission,
            scope=str(target.scope) if target.scope else None,
        )
        return AccessDecision.denied(
            DenialReason.MISSING_PERMISSION,
            permission=target.permission,
            resource_id=target.scope,
        )


class AppRoleStrategy(AccessStrategy):
    """App roles: a direct grant governs, else org owner/admin yields app admin."""

    resource_type = "app"

    async def decide(
        self, user_id: uuid.UUID, target: AppTarget, store: RowStore
    ) -> AccessDecision:
        app_id = target.app_id
        required = target.required_roles

        # 1. Direct grant
        grant = await store.select_one(AppPermission, app_id=app_id, user_id=user_id)
        if grant is not None:
            if required is not None and grant.role not in required:
                log.info(
                    "access.insufficient_app_role",
                    user_id=str(user_id),
                    app_id=str(app_id),
                    role=grant.role,
                    required=list(required),
                )
                return AccessDecision.denied(
                    DenialReason.INSUFFICIENT_ROLE,
                    effective_role=grant.role,
                    via="direct",
                    resource_id=app_id,
                    required_roles=required,
                )
            return AccessDecision.allowed(
                effective_role=grant.role, via="direct", resource_id=app_id
            )

        # 2. Owning organization
        app = await store.select_one(App, id=app_id)
        if app is None:
            raise ResourceNotFound("App not found")

        # 3. Elevated membership in it
        members = await store.select(
            OrganizationMember,
            organization_id=app.organization_id,
            user_id=user_id,
            in_={"role": ORG_ADMIN},
            limit=1,
        )
        if not members:
            log.warning("access.app_denied", user_id=str(user_id), app_id=str(app_id))
            return AccessDecision.denied(
                DenialReason.NO_ACCESS,
                resource_id=app_id,
                organization_id=app.organization_id,
            )
        member = members[0]

        # 4. Org elevation yields the top app role or nothing
        if required is not None and TOP_APP_ROLE.value not in required:
            log.info(
                "access.org_admin_role_excluded",
                user_id=str(user_id),
                app_id=str(app_id),
                required=list(required),
            )
            return AccessDecision.denied(
                DenialReason.INSUFFICIENT_ROLE,
                via="organization",
                resource_id=app_id,
                organization_id=app.organization_id,
                org_role=member.role,
                required_roles=required,
            )

        return AccessDecision.allowed(
            effective_role=TOP_APP_ROLE.value,
            via="organization",
            resource_id=app_id,
            organization_id=app.organization_id,
            org_role=member.role,
        )


class OrgRoleStrategy(AccessStrategy):
    """Organization membership, optionally restricted to a set of org roles."""

    resource_type = "organization"

    async def decide(
        self, user_id: uuid.UUID, target: OrgTarget, store: RowStore
    ) -> AccessDecision:
        org_id = target.organization_id
        member = await store.select_one(
            OrganizationMember, organization_id=org_id, user_id=user_id
        )
        if member is None:
            log.warning("access.org_membership_missing", user_id=str(user_id), org_id=str(org_id))
            return AccessDecision.denied(DenialReason.NO_ACCESS, organization_id=org_id)

        required = target.required_roles
        if required is not None and member.role not in required:
            log.warning(
                "access.insufficient_org_role",
                user_id=str(user_id),
                org_id=str(org_id),
                role=member.role,
                required=list(required),
            )
            return AccessDecision.denied(
                DenialReason.INSUFFICIENT_ROLE,
                organization_id=org_id,
                org_role=member.role,
                required_roles=required,
            )

        return AccessDecision.allowed(
            effective_role=member.role,
            via="membership",
            organization_id=org_id,
            org_role=member.role,
        )


STRATEGIES: dict[str, AccessStrategy] = {
    s.resource_type: s for s in (PermissionStrategy(), AppRoleStrategy(), OrgRoleStrategy())
}


def strategy_for(resource_type: str) -> AccessStrategy:
    """Registered strategy for ``resource_type``. Raises ValueError for unknown types."""
    try:
        return STRATEGIES[resource_type]
    except KeyError:
        raise ValueError(f"No access strategy for resource type '{resource_type}'") from None


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------

async def authorize(
    user_id: uuid.UUID,
    permission: str,
    scope: Optional[uuid.UUID],
    store: RowStore,
) -> bool:
    """True when the user's resolved permission set covers ``permission``."""
    decision = await strategy_for("legacy").decide(
        user_id, PermissionTarget(permission, scope), store
    )
    return decision.granted


async def check_resource_access(
    user_id: uuid.UUID,
    resource_id: uuid.UUID,
    required_roles: Optional[Iterable[RoleLike]],
    store: RowStore,
) -> AccessDecision:
    """Role-based access to one app (direct grant, then organization fallback)."""
    return await strategy_for("app").decide(
        user_id, AppTarget(resource_id, normalize_roles(required_roles)), store
    )


async def check_org_membership(
    user_id: uuid.UUID,
    organization_id: uuid.UUID,
    required_roles: Optional[Iterable[RoleLike]],
    store: RowStore,
) -> AccessDecision:
    """Membership of one org (any role, or one of ``required_roles``)."""
    return await strategy_for("organization").decide(
        user_id, OrgTarget(organization_id, normalize_roles(required_roles)), store
    )
